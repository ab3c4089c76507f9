"""
Backup Store

Manages the flat directory of archive files:
- Listing with best-effort metadata (one bad file never breaks the list)
- Retention sweep (full archives are kept forever)
- Aggregate size monitoring
- Stale temp-file sweep

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import aiofiles.os

from pastificio.core.exceptions import ArchiveIOError, BackupError, CorruptArchiveError
from pastificio.services.backup.codec import ArchiveCodec, TEMP_SUFFIX
from pastificio.services.backup.schemas import Archive, ArchiveType, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 7
DEFAULT_SIZE_WARNING_BYTES = 1024 * 1024 * 1024  # 1 GiB


def _is_archive_candidate(name: str) -> bool:
    return not name.startswith(".") and not name.endswith(TEMP_SUFFIX)


class BackupStore:
    """Directory-level operations over the archives written by ArchiveCodec."""

    def __init__(
        self,
        codec: ArchiveCodec,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.codec = codec
        self.retention_days = retention_days
        self.clock = clock

    @property
    def backup_dir(self) -> Path:
        return self.codec.backup_dir

    # =========================================================================
    # LISTING
    # =========================================================================

    async def _scan(self) -> list[str]:
        try:
            names = await aiofiles.os.listdir(self.backup_dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise ArchiveIOError(f"Could not list {self.backup_dir}: {e}") from e
        return sorted(name for name in names if _is_archive_candidate(name))

    async def list_backups(self) -> list[Archive]:
        """
        List every archive in the backup directory, newest first.

        Metadata is read by running each file through the restore path.
        Files that cannot be read are still listed, with metadata=None.
        """
        archives = []

        for name in await self._scan():
            path = self.backup_dir / name
            try:
                stat = await aiofiles.os.stat(path)
            except FileNotFoundError:
                # Deleted between scan and stat
                continue
            except OSError as e:
                logger.warning(f"Could not stat {name}: {e}")
                continue

            if not path.is_file():
                continue

            metadata = None
            read_error = None
            try:
                envelope = await self.codec.read_archive(name)
                metadata = envelope.metadata
            except BackupError as e:
                read_error = type(e).__name__
                logger.warning(f"Could not read metadata for {name}: {e}")

            created_at = (
                metadata.created_at
                if metadata is not None
                else datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            )
            archives.append(
                Archive(
                    filename=name,
                    path=path,
                    created_at=created_at,
                    size=stat.st_size,
                    metadata=metadata,
                    read_error=read_error,
                )
            )

        archives.sort(key=lambda a: a.created_at, reverse=True)
        return archives

    async def latest_full_backup(self, backups: Optional[list[Archive]] = None) -> Optional[Archive]:
        """Most recent full archive (by metadata created_at), if any."""
        if backups is None:
            backups = await self.list_backups()
        fulls = [b for b in backups if b.is_full]
        if not fulls:
            return None
        return max(fulls, key=lambda b: b.metadata.created_at)

    # =========================================================================
    # RETENTION
    # =========================================================================

    async def cleanup_old_backups(self, now: Optional[datetime] = None) -> int:
        """
        Delete non-full archives older than the retention window.

        An unreadable archive is deleted only when its bytes are corrupt.
        Archives that failed on a missing or wrong key may be encrypted
        full backups and are kept. A failed deletion is logged and the
        sweep continues.

        Returns:
            Number of files deleted
        """
        now = now or self.clock()
        cutoff = now - timedelta(days=self.retention_days)
        deleted = 0

        for archive in await self.list_backups():
            if archive.created_at >= cutoff or archive.is_full:
                continue
            if archive.metadata is None and archive.read_error != CorruptArchiveError.__name__:
                logger.warning(f"Keeping unreadable backup {archive.filename} ({archive.read_error})")
                continue
            try:
                await aiofiles.os.remove(archive.path)
                deleted += 1
                logger.info(f"Deleted old backup: {archive.filename}")
            except OSError as e:
                logger.error(f"Could not delete {archive.filename}: {e}")

        if deleted:
            logger.info(f"Deleted {deleted} old backups")
        return deleted

    # =========================================================================
    # MONITORING
    # =========================================================================

    async def total_size(self) -> int:
        return sum(archive.size for archive in await self.list_backups())

    async def check_size(self, threshold: int = DEFAULT_SIZE_WARNING_BYTES) -> dict[str, Any]:
        """Log the aggregate archive size and warn above the threshold."""
        backups = await self.list_backups()
        total = sum(archive.size for archive in backups)
        logger.info(f"Total backup size: {total / 1024 / 1024:.2f}MB in {len(backups)} archives")

        over = total > threshold
        if over:
            logger.warning(
                f"Backup size {total / 1024 / 1024:.2f}MB exceeds "
                f"{threshold / 1024 / 1024:.0f}MB"
            )
        return {
            "total_size": total,
            "archive_count": len(backups),
            "threshold": threshold,
            "over_threshold": over,
        }

    def summarize(self, backups: list[Archive]) -> dict[str, Any]:
        """Counts by archive type, used by the admin listing."""
        counts = {t.value: 0 for t in ArchiveType}
        unreadable = 0
        for archive in backups:
            if archive.metadata is None:
                unreadable += 1
            else:
                counts[archive.metadata.type.value] += 1
        return {
            **counts,
            "unreadable": unreadable,
            "total_size": sum(a.size for a in backups),
        }


async def sweep_temp_files(
    directory: Path,
    max_age_hours: int = 24,
    now: Optional[datetime] = None,
) -> int:
    """
    Remove regular files older than max_age_hours from a scratch directory.

    Best-effort per file. Returns the number of files removed.
    """
    directory = Path(directory)
    now = now or utcnow()
    cutoff = (now - timedelta(hours=max_age_hours)).timestamp()

    try:
        names = await aiofiles.os.listdir(directory)
    except FileNotFoundError:
        return 0

    removed = 0
    for name in names:
        path = directory / name
        try:
            stat = await aiofiles.os.stat(path)
            if not path.is_file() or stat.st_mtime >= cutoff:
                continue
            await aiofiles.os.remove(path)
            removed += 1
            logger.info(f"Temp file removed: {name}")
        except OSError as e:
            logger.warning(f"Could not remove temp file {name}: {e}")

    return removed
