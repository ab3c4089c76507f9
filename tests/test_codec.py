"""
Unit tests for the archive codec.

Tests cover:
- Round trip across every compress/encrypt combination
- Filename suffix chain
- Embedded metadata
- Missing key, wrong key and damaged files
"""

import pytest

from pastificio.core.exceptions import (
    ArchiveNotFoundError,
    ConfigError,
    CorruptArchiveError,
    DecryptionError,
)
from pastificio.services.backup import ArchiveCodec, ArchiveType, Snapshot


class TestArchiveCodec:
    """Tests for ArchiveCodec."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "compress,encrypt,expected",
        [
            (True, True, "x.gz.enc"),
            (True, False, "x.gz"),
            (False, True, "x.enc"),
            (False, False, "x"),
        ],
    )
    async def test_round_trip(self, codec, snapshot, compress, encrypt, expected):
        """Restoring gives back the snapshot that was written."""
        archive = await codec.create_backup(snapshot, "x", compress=compress, encrypt=encrypt)

        assert archive.filename == expected
        assert (codec.backup_dir / expected).is_file()

        restored = await codec.restore_backup(archive.filename)
        assert isinstance(restored, Snapshot)
        assert restored == snapshot

    @pytest.mark.asyncio
    async def test_metadata(self, codec, snapshot):
        archive = await codec.create_backup(snapshot, "meta", compress=True, encrypt=True)

        envelope = await codec.read_archive(archive.filename)
        assert envelope.metadata.type == ArchiveType.FULL
        assert envelope.metadata.compressed is True
        assert envelope.metadata.encrypted is True
        assert envelope.metadata.raw_size == len(snapshot.model_dump_json().encode("utf-8"))
        assert archive.size == (codec.backup_dir / archive.filename).stat().st_size

    @pytest.mark.asyncio
    async def test_suffixes_in_base_name_are_stripped(self, codec, snapshot):
        archive = await codec.create_backup(snapshot, "weekly.gz.enc", compress=True, encrypt=False)
        assert archive.filename == "weekly.gz"

    @pytest.mark.asyncio
    async def test_no_temp_file_left(self, codec, snapshot):
        await codec.create_backup(snapshot, "clean")
        assert [p.name for p in codec.backup_dir.iterdir()] == ["clean.gz"]

    @pytest.mark.asyncio
    async def test_encrypt_without_key(self, backup_dir, snapshot):
        """Encryption without a configured key fails before anything is written."""
        codec = ArchiveCodec(backup_dir, encryption_key=None)

        with pytest.raises(ConfigError):
            await codec.create_backup(snapshot, "nokey", encrypt=True)
        assert not (backup_dir / "nokey.gz.enc").exists()

    @pytest.mark.asyncio
    async def test_read_encrypted_without_key(self, codec, backup_dir, snapshot):
        archive = await codec.create_backup(snapshot, "locked", encrypt=True)

        with pytest.raises(ConfigError):
            await ArchiveCodec(backup_dir).restore_backup(archive.filename)

    @pytest.mark.asyncio
    async def test_wrong_key(self, codec, backup_dir, snapshot):
        archive = await codec.create_backup(snapshot, "locked", encrypt=True)

        with pytest.raises(DecryptionError):
            await ArchiveCodec(backup_dir, encryption_key="another-secret").restore_backup(archive.filename)

    @pytest.mark.asyncio
    async def test_truncated_file(self, codec, snapshot):
        """A cut-off gzip stream is reported as a corrupt archive."""
        archive = await codec.create_backup(snapshot, "cut", compress=True)
        data = archive.path.read_bytes()
        archive.path.write_bytes(data[: len(data) // 2])

        with pytest.raises(CorruptArchiveError):
            await codec.restore_backup(archive.filename)

    @pytest.mark.asyncio
    async def test_invalid_json(self, codec):
        codec.ensure_directory()
        (codec.backup_dir / "garbage").write_bytes(b"not json at all")

        with pytest.raises(CorruptArchiveError):
            await codec.restore_backup("garbage")

    @pytest.mark.asyncio
    async def test_missing_archive(self, codec):
        codec.ensure_directory()
        with pytest.raises(ArchiveNotFoundError):
            await codec.restore_backup("missing.gz")

    @pytest.mark.asyncio
    async def test_missing_archive_is_an_os_error(self, codec):
        codec.ensure_directory()
        with pytest.raises(OSError):
            await codec.restore_backup("missing")

    @pytest.mark.parametrize("name", ["", ".", "..", "../etc/passwd", "sub/file.gz"])
    def test_path_for_rejects_paths(self, codec, name):
        with pytest.raises(ValueError):
            codec.path_for(name)
