"""
Archive Codec

Turns a payload (Snapshot or ChangeSet) into an archive file and back:

    envelope JSON -> [gzip] -> [fernet] -> <base>[.gz][.enc]

Reading never looks inside the file to decide what to undo: the suffix
chain of the filename is the only pipeline indicator.

Files are written to `<name>.tmp` and renamed when complete, so a
directory scan never sees a half-written archive under its final name.

Usage:
    codec = ArchiveCodec(Path("backups"), encryption_key="s3cret")
    archive = await codec.create_backup(snapshot, "full-backup", encrypt=True)
    snapshot = await codec.restore_backup(archive.filename)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from pastificio.core.exceptions import (
    ArchiveIOError,
    ArchiveNotFoundError,
    CorruptArchiveError,
)
from pastificio.services.backup.schemas import (
    Archive,
    ArchiveEnvelope,
    ArchiveMetadata,
    ArchiveType,
    ChangeSet,
    Snapshot,
    SCHEMA_VERSION,
    utcnow,
)
from pastificio.services.backup.stages import (
    archive_filename,
    build_pipeline,
    infer_pipeline,
    run_forward,
    run_inverse,
    strip_suffixes,
)

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class ArchiveCodec:
    """Writes and reads archive files in a single flat directory."""

    def __init__(
        self,
        backup_dir: Path,
        encryption_key: Optional[str] = None,
        compression_level: int = 6,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.backup_dir = Path(backup_dir)
        self.encryption_key = encryption_key
        self.compression_level = compression_level
        self.clock = clock

    def ensure_directory(self) -> None:
        """Create the backup directory if needed."""
        if not self.backup_dir.exists():
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created backup directory: {self.backup_dir}")

    def path_for(self, filename: str) -> Path:
        """Resolve an archive filename inside the backup directory."""
        if not filename or filename != os.path.basename(filename) or filename in (".", ".."):
            raise ValueError(f"Invalid archive filename: {filename!r}")
        return self.backup_dir / filename

    # =========================================================================
    # WRITE
    # =========================================================================

    async def create_backup(
        self,
        payload: Union[Snapshot, ChangeSet],
        base_name: str,
        *,
        type: ArchiveType = ArchiveType.FULL,
        compress: bool = True,
        encrypt: bool = False,
        compression_level: Optional[int] = None,
    ) -> Archive:
        """
        Serialize, transform and write one archive.

        Args:
            payload: Snapshot or ChangeSet to persist
            base_name: Filename without pipeline suffixes (any are stripped)
            type: full or incremental
            compress: gzip the serialized bytes
            encrypt: Fernet-encrypt the (possibly compressed) bytes
            compression_level: gzip level 1-9 (defaults to the codec's)

        Returns:
            Archive: the written file with its metadata

        Raises:
            ConfigError: encrypt requested without a configured key
            ArchiveIOError: the file could not be written
        """
        level = self.compression_level if compression_level is None else compression_level
        stages = build_pipeline(
            compress=compress,
            encrypt=encrypt,
            compression_level=level,
            secret=self.encryption_key,
        )

        base = strip_suffixes(base_name)
        filename = archive_filename(base, stages)
        final_path = self.path_for(filename)

        raw = payload.model_dump_json().encode("utf-8")
        metadata = ArchiveMetadata(
            created_at=self.clock(),
            schema_version=SCHEMA_VERSION,
            raw_size=len(raw),
            type=ArchiveType(type),
            compressed=compress,
            encrypted=encrypt,
        )
        envelope = ArchiveEnvelope(metadata=metadata, payload=payload)
        data = run_forward(stages, envelope.model_dump_json().encode("utf-8"))

        self.ensure_directory()
        temp_path = final_path.with_name(filename + TEMP_SUFFIX)
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, final_path)
        except OSError as e:
            logger.error(f"Backup write failed for {filename}: {e}")
            if temp_path.exists():
                temp_path.unlink()
            raise ArchiveIOError(f"Could not write archive {filename}: {e}", filename=filename) from e

        logger.info(
            f"Backup created: {final_path} "
            f"({metadata.type.value}, {metadata.raw_size} raw bytes -> {len(data)} bytes)"
        )
        return Archive(
            filename=filename,
            path=final_path,
            created_at=metadata.created_at,
            size=len(data),
            metadata=metadata,
        )

    # =========================================================================
    # READ
    # =========================================================================

    async def read_archive(self, filename: str) -> ArchiveEnvelope:
        """
        Read an archive and return its envelope (metadata + payload).

        Raises:
            ArchiveNotFoundError: no such file
            ArchiveIOError: the file could not be read
            ConfigError: encrypted archive but no key configured
            DecryptionError: the cipher stage failed
            CorruptArchiveError: bytes did not parse after the inverse pipeline
        """
        path = self.path_for(filename)
        stages = infer_pipeline(filename, secret=self.encryption_key)

        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError as e:
            raise ArchiveNotFoundError(f"Archive not found: {filename}", filename=filename) from e
        except OSError as e:
            raise ArchiveIOError(f"Could not read archive {filename}: {e}", filename=filename) from e

        data = run_inverse(stages, data)

        try:
            return ArchiveEnvelope.model_validate_json(data)
        except (ValidationError, ValueError) as e:
            raise CorruptArchiveError(f"Archive {filename} is not a valid backup: {e}", filename=filename) from e

    async def restore_backup(self, filename: str) -> Union[Snapshot, ChangeSet]:
        """Read an archive and return the embedded payload."""
        envelope = await self.read_archive(filename)
        logger.info(f"Backup restored: {filename}")
        return envelope.payload
