"""
Incremental Differencer

Incremental archives are differential: each one holds every change since
the most recent full backup, so restoring needs only the full archive and
a single incremental.

Diff algorithm: records are matched by identity within each collection.
The identity is the record's `id` field; records without one are keyed by
a hash of their content (so any edit shows up as remove + add).

    id only in new      -> added     (after)
    id only in baseline -> removed   (before)
    id in both, differs -> modified  (before, after, changed field names)

Deltas are ordered by collection, then by record id.

Author: Khalil Bannouri
Version: 1.0.0
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from pastificio.core.exceptions import BackupError, CorruptArchiveError
from pastificio.services.backup.codec import ArchiveCodec
from pastificio.services.backup.schemas import (
    Archive,
    ArchiveType,
    ChangeSet,
    COLLECTIONS,
    DeltaOp,
    RecordDelta,
    Snapshot,
    utcnow,
)
from pastificio.services.backup.store import BackupStore

logger = logging.getLogger(__name__)


def record_key(record: dict[str, Any]) -> str:
    """Identity of a record inside its collection."""
    record_id = record.get("id")
    if record_id is not None:
        return str(record_id)
    digest = hashlib.sha256(
        json.dumps(record, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"sha256:{digest[:16]}"


def _id_sort_key(record_id: str) -> tuple:
    # Numeric ids sort numerically, everything else after them
    if record_id.isdigit():
        return (0, int(record_id), "")
    return (1, 0, record_id)


def _index(records: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    return {record_key(record): record for record in records}


def compute_changeset(
    new: Snapshot,
    baseline: Optional[Snapshot],
    base_version: Optional[str] = None,
    produced_at: Optional[datetime] = None,
) -> ChangeSet:
    """
    Compute record deltas from baseline to new.

    A missing baseline is an empty one: every record is `added`.
    """
    changes = []

    for collection in COLLECTIONS:
        old = _index(baseline.collection(collection)) if baseline is not None else {}
        current = _index(new.collection(collection))

        for record_id in sorted(old.keys() | current.keys(), key=_id_sort_key):
            before = old.get(record_id)
            after = current.get(record_id)

            if before is None:
                changes.append(RecordDelta(
                    collection=collection, record_id=record_id, op=DeltaOp.ADDED, after=after,
                ))
            elif after is None:
                changes.append(RecordDelta(
                    collection=collection, record_id=record_id, op=DeltaOp.REMOVED, before=before,
                ))
            elif before != after:
                fields = sorted(
                    field for field in before.keys() | after.keys()
                    if before.get(field) != after.get(field)
                )
                changes.append(RecordDelta(
                    collection=collection,
                    record_id=record_id,
                    op=DeltaOp.MODIFIED,
                    before=before,
                    after=after,
                    fields=fields,
                ))

    return ChangeSet(
        changes=changes,
        base_version=base_version,
        produced_at=produced_at or utcnow(),
    )


def apply_changeset(baseline: Optional[Snapshot], changeset: ChangeSet) -> Snapshot:
    """Rebuild the snapshot a changeset was computed from."""
    collections = {}

    for collection in COLLECTIONS:
        records = _index(baseline.collection(collection)) if baseline is not None else {}

        for delta in changeset.changes:
            if delta.collection != collection:
                continue
            if delta.op == DeltaOp.REMOVED:
                records.pop(delta.record_id, None)
            else:
                records[delta.record_id] = delta.after

        collections[collection] = list(records.values())

    return Snapshot(captured_at=changeset.produced_at, **collections)


class IncrementalBackup:
    """Creates incremental archives and restores the state they describe."""

    def __init__(
        self,
        codec: ArchiveCodec,
        store: BackupStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.codec = codec
        self.store = store
        self.clock = clock

    async def _restore_snapshot(self, filename: str) -> Snapshot:
        payload = await self.codec.restore_backup(filename)
        if not isinstance(payload, Snapshot):
            raise CorruptArchiveError(f"{filename} does not contain a snapshot", filename=filename)
        return payload

    async def _previous_changeset(self, backups: list[Archive]) -> Optional[ChangeSet]:
        incrementals = [b for b in backups if b.is_incremental]
        if not incrementals:
            return None
        latest = max(incrementals, key=lambda b: b.metadata.created_at)
        try:
            payload = await self.codec.restore_backup(latest.filename)
        except BackupError as e:
            logger.warning(f"Could not read previous incremental {latest.filename}: {e}")
            return None
        return payload if isinstance(payload, ChangeSet) else None

    async def compute_incremental(self, snapshot: Snapshot, base_name: str) -> Optional[Archive]:
        """
        Write an incremental archive of the changes since the last full backup.

        Returns:
            The written Archive, or None when nothing changed (no file written)
        """
        backups = await self.store.list_backups()
        full = await self.store.latest_full_backup(backups)

        baseline = None
        base_version = None
        if full is not None:
            baseline = await self._restore_snapshot(full.filename)
            base_version = full.filename
        else:
            logger.info("No full backup found, diffing against an empty baseline")

        changeset = compute_changeset(snapshot, baseline, base_version, produced_at=self.clock())

        if changeset.is_empty:
            logger.info("No changes detected, skipping incremental backup")
            return None

        previous = await self._previous_changeset(backups)
        if (
            previous is not None
            and previous.base_version == base_version
            and previous.changes == changeset.changes
        ):
            logger.info("No changes since the last incremental backup, skipping")
            return None

        timestamp = changeset.produced_at.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        archive = await self.codec.create_backup(
            changeset,
            f"{base_name}-inc-{timestamp}",
            type=ArchiveType.INCREMENTAL,
            compress=True,
            encrypt=True,
        )
        logger.info(f"Incremental backup with {len(changeset.changes)} changes: {archive.filename}")
        return archive

    async def restore_state(self, filename: str) -> Snapshot:
        """
        Return the full snapshot an archive represents.

        Full archives are returned as-is; incrementals are applied on top
        of the full archive they were computed against.
        """
        payload = await self.codec.restore_backup(filename)
        if isinstance(payload, Snapshot):
            return payload

        baseline = None
        if payload.base_version is not None:
            baseline = await self._restore_snapshot(payload.base_version)
        return apply_changeset(baseline, payload)
