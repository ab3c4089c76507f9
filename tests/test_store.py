"""
Unit tests for the backup store.

Tests cover:
- Listing (newest first, resilient to bad files, skips temp files)
- Retention cleanup
- Size monitoring
- Temp file sweep
"""

import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from pastificio.services.backup import ArchiveCodec, ArchiveType, BackupStore
from pastificio.services.backup.store import sweep_temp_files


def _age(path, days):
    """Push a file's mtime back by the given number of days."""
    stamp = time.time() - days * 24 * 3600
    os.utime(path, (stamp, stamp))


class TestListing:
    """Tests for BackupStore.list_backups."""

    @pytest.mark.asyncio
    async def test_empty_directory(self, store):
        assert await store.list_backups() == []

    @pytest.mark.asyncio
    async def test_newest_first(self, codec, old_codec, store, snapshot):
        old = await old_codec.create_backup(snapshot, "old")
        new = await codec.create_backup(snapshot, "new")

        backups = await store.list_backups()
        assert [b.filename for b in backups] == [new.filename, old.filename]
        assert all(b.metadata is not None for b in backups)

    @pytest.mark.asyncio
    async def test_unreadable_archive_is_listed(self, codec, store, snapshot):
        """A damaged file shows up without metadata instead of failing the list."""
        await codec.create_backup(snapshot, "good")
        (codec.backup_dir / "broken.gz").write_bytes(b"\x00\x01\x02")

        backups = {b.filename: b for b in await store.list_backups()}
        assert set(backups) == {"good.gz", "broken.gz"}
        assert backups["good.gz"].metadata is not None
        assert backups["broken.gz"].metadata is None
        assert backups["broken.gz"].size == 3

    @pytest.mark.asyncio
    async def test_skips_temp_and_hidden_files(self, codec, store, snapshot):
        await codec.create_backup(snapshot, "good")
        (codec.backup_dir / "partial.gz.tmp").write_bytes(b"half")
        (codec.backup_dir / ".backup.lock").write_bytes(b"")

        assert [b.filename for b in await store.list_backups()] == ["good.gz"]

    @pytest.mark.asyncio
    async def test_latest_full_backup(self, codec, old_codec, store, snapshot):
        await old_codec.create_backup(snapshot, "first")
        latest = await codec.create_backup(snapshot, "second")
        await codec.create_backup(snapshot, "inc", type=ArchiveType.INCREMENTAL)

        full = await store.latest_full_backup()
        assert full.filename == latest.filename

    @pytest.mark.asyncio
    async def test_summarize(self, codec, store, snapshot):
        await codec.create_backup(snapshot, "full")
        await codec.create_backup(snapshot, "inc", type=ArchiveType.INCREMENTAL)
        (codec.backup_dir / "broken").write_bytes(b"x")

        summary = store.summarize(await store.list_backups())
        assert summary["full"] == 1
        assert summary["incremental"] == 1
        assert summary["unreadable"] == 1


class TestRetention:
    """Tests for BackupStore.cleanup_old_backups."""

    @pytest.mark.asyncio
    async def test_old_incrementals_deleted(self, codec, old_codec, store, snapshot):
        """Only non-full archives past the retention window are removed."""
        old_full = await old_codec.create_backup(snapshot, "old-full")
        old_inc = await old_codec.create_backup(snapshot, "old-inc", type=ArchiveType.INCREMENTAL)
        new_inc = await codec.create_backup(snapshot, "new-inc", type=ArchiveType.INCREMENTAL)

        deleted = await store.cleanup_old_backups()

        assert deleted == 1
        remaining = {b.filename for b in await store.list_backups()}
        assert remaining == {old_full.filename, new_inc.filename}
        assert not old_inc.path.exists()

    @pytest.mark.asyncio
    async def test_retention_window_is_configurable(self, codec, old_codec, snapshot):
        await old_codec.create_backup(snapshot, "old-inc", type=ArchiveType.INCREMENTAL)

        assert await BackupStore(codec, retention_days=30).cleanup_old_backups() == 0
        assert await BackupStore(codec, retention_days=7).cleanup_old_backups() == 1

    @pytest.mark.asyncio
    async def test_keyless_store_keeps_encrypted_full(self, old_codec, backup_dir, snapshot):
        """An archive that only fails for lack of a key is never pruned."""
        archive = await old_codec.create_backup(snapshot, "old-full", encrypt=True)
        _age(archive.path, days=8)
        keyless = BackupStore(ArchiveCodec(backup_dir, encryption_key=None), retention_days=7)

        listed = await keyless.list_backups()
        assert listed[0].metadata is None
        assert listed[0].read_error == "ConfigError"

        assert await keyless.cleanup_old_backups() == 0
        assert archive.path.exists()

    @pytest.mark.asyncio
    async def test_wrong_key_keeps_encrypted_full(self, old_codec, backup_dir, snapshot):
        archive = await old_codec.create_backup(snapshot, "old-full", encrypt=True)
        _age(archive.path, days=8)
        wrong_key = BackupStore(ArchiveCodec(backup_dir, encryption_key="another-secret"))

        assert await wrong_key.cleanup_old_backups() == 0
        assert archive.path.exists()

    @pytest.mark.asyncio
    async def test_old_corrupt_file_deleted(self, codec, store):
        broken = codec.backup_dir / "broken.gz"
        codec.ensure_directory()
        broken.write_bytes(b"\x00\x01\x02")
        _age(broken, days=8)

        assert await store.cleanup_old_backups() == 1
        assert not broken.exists()

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, codec, store, snapshot):
        await codec.create_backup(snapshot, "fresh", type=ArchiveType.INCREMENTAL)
        assert await store.cleanup_old_backups() == 0


class TestMonitoring:
    """Tests for size checks."""

    @pytest.mark.asyncio
    async def test_total_size(self, codec, store, snapshot):
        a = await codec.create_backup(snapshot, "a")
        b = await codec.create_backup(snapshot, "b", compress=False)
        assert await store.total_size() == a.size + b.size

    @pytest.mark.asyncio
    async def test_check_size_threshold(self, codec, store, snapshot):
        archive = await codec.create_backup(snapshot, "a")

        under = await store.check_size(threshold=archive.size + 1)
        assert under["over_threshold"] is False
        assert under["archive_count"] == 1

        over = await store.check_size(threshold=1)
        assert over["over_threshold"] is True
        assert over["total_size"] == archive.size


class TestTempSweep:
    """Tests for sweep_temp_files."""

    @pytest.mark.asyncio
    async def test_removes_only_stale_files(self, tmp_path):
        stale = tmp_path / "stale.xlsx"
        fresh = tmp_path / "fresh.xlsx"
        stale.write_bytes(b"old")
        fresh.write_bytes(b"new")
        two_days_ago = time.time() - 48 * 3600
        os.utime(stale, (two_days_ago, two_days_ago))

        removed = await sweep_temp_files(tmp_path, max_age_hours=24)

        assert removed == 1
        assert not stale.exists()
        assert fresh.exists()

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        assert await sweep_temp_files(tmp_path / "nope") == 0

    @pytest.mark.asyncio
    async def test_explicit_now(self, tmp_path):
        (tmp_path / "report.pdf").write_bytes(b"%PDF")
        later = datetime.now(timezone.utc) + timedelta(hours=25)

        assert await sweep_temp_files(tmp_path, max_age_hours=24, now=later) == 1
