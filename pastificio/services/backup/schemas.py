"""
Backup Data Model

Pydantic models for everything that goes into or comes out of an archive.

The serialized bundle (ArchiveEnvelope) carries a metadata block and a
payload. The payload is a tagged union discriminated by `kind`:

    {"kind": "snapshot",  ...}  - full copy of the business records
    {"kind": "changeset", ...}  - record deltas against a full backup

Both payload types are frozen: once produced they are never mutated.

Author: Khalil Bannouri
Version: 1.0.0
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


SCHEMA_VERSION = "1.0"

# Collections captured in a snapshot, in capture order
COLLECTIONS = ("orders", "customers", "users")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArchiveType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class DeltaOp(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


# =============================================================================
# PAYLOADS
# =============================================================================

class Snapshot(BaseModel):
    """Full copy of the persisted business records at a point in time."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["snapshot"] = "snapshot"
    schema_version: str = SCHEMA_VERSION
    captured_at: datetime = Field(default_factory=utcnow)
    orders: list[dict[str, Any]] = Field(default_factory=list)
    customers: list[dict[str, Any]] = Field(default_factory=list)
    users: list[dict[str, Any]] = Field(default_factory=list)

    def collection(self, name: str) -> list[dict[str, Any]]:
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return getattr(self, name)

    @property
    def record_count(self) -> int:
        return sum(len(self.collection(name)) for name in COLLECTIONS)


class RecordDelta(BaseModel):
    """One record-level change between two snapshots."""
    model_config = ConfigDict(frozen=True)

    collection: str
    record_id: str
    op: DeltaOp
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    fields: list[str] = Field(default_factory=list)


class ChangeSet(BaseModel):
    """Ordered record deltas against the full backup named by base_version."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["changeset"] = "changeset"
    changes: list[RecordDelta] = Field(default_factory=list)
    base_version: Optional[str] = None
    produced_at: datetime = Field(default_factory=utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.changes


Payload = Annotated[Union[Snapshot, ChangeSet], Field(discriminator="kind")]


# =============================================================================
# ARCHIVE
# =============================================================================

class ArchiveMetadata(BaseModel):
    """Metadata embedded in every archive."""
    created_at: datetime
    schema_version: str = SCHEMA_VERSION
    raw_size: int
    type: ArchiveType = ArchiveType.FULL
    compressed: bool = True
    encrypted: bool = False


class ArchiveEnvelope(BaseModel):
    """The serialized bundle written to disk (before compression/encryption)."""
    metadata: ArchiveMetadata
    payload: Payload


class Archive(BaseModel):
    """
    An archive file as seen by the store.

    `metadata` is None when the file exists but could not be read;
    `read_error` then names the error class that stopped the read.
    """
    filename: str
    path: Path
    created_at: datetime
    size: int
    metadata: Optional[ArchiveMetadata] = None
    read_error: Optional[str] = None

    @property
    def is_full(self) -> bool:
        return self.metadata is not None and self.metadata.type == ArchiveType.FULL

    @property
    def is_incremental(self) -> bool:
        return self.metadata is not None and self.metadata.type == ArchiveType.INCREMENTAL
