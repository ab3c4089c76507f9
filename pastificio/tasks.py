"""
Celery Tasks
Scheduled backup jobs: weekly full, daily incremental, retention cleanup
and size monitoring.

Each task builds its own ServiceState and holds a file lock on the backup
directory, so two workers never write or prune archives at the same time.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Optional

from filelock import FileLock, Timeout

from pastificio.celery_worker import celery_app
from pastificio.core.config import get_settings
from pastificio.database import async_session_maker, engine
from pastificio.services.backup import ArchiveType, Snapshot
from pastificio.services.backup.schemas import utcnow
from pastificio.services.backup.store import sweep_temp_files
from pastificio.services.snapshot import capture_snapshot
from pastificio.state import ServiceState

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".backup.lock"
FULL_BACKUP_LEVEL = 9


# =============================================================================
# JOB BODIES
# =============================================================================

async def run_full_backup(state: ServiceState, snapshot: Snapshot) -> dict[str, Any]:
    """Maximum-compression encrypted full backup."""
    timestamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    archive = await state.codec.create_backup(
        snapshot,
        f"full-backup-{timestamp}",
        type=ArchiveType.FULL,
        compress=True,
        encrypt=True,
        compression_level=FULL_BACKUP_LEVEL,
    )
    return {"success": True, "filename": archive.filename, "size": archive.size}


async def run_incremental_backup(state: ServiceState, snapshot: Snapshot) -> dict[str, Any]:
    archive = await state.incremental.compute_incremental(snapshot, "daily-backup")
    if archive is None:
        return {"success": True, "filename": None, "message": "No changes since the last backup"}
    return {"success": True, "filename": archive.filename, "size": archive.size}


async def run_cleanup(state: ServiceState, now: Optional[datetime] = None) -> dict[str, Any]:
    deleted = await state.store.cleanup_old_backups(now=now)
    swept = await sweep_temp_files(
        state.settings.temp_path,
        max_age_hours=state.settings.temp_file_max_age_hours,
        now=now,
    )
    return {"success": True, "deleted_archives": deleted, "deleted_temp_files": swept}


async def run_size_check(state: ServiceState) -> dict[str, Any]:
    return await state.store.check_size(state.settings.backup_size_warning_bytes)


async def _with_snapshot(job, state: ServiceState) -> dict[str, Any]:
    async with async_session_maker() as db:
        snapshot = await capture_snapshot(db)
    # Pooled connections belong to this event loop
    await engine.dispose()
    return await job(state, snapshot)


def _run_locked(name: str, coro_factory) -> dict[str, Any]:
    """Run an async job under the backup directory lock."""
    settings = get_settings()
    state = ServiceState.from_settings(settings)
    state.codec.ensure_directory()

    lock = FileLock(str(state.codec.backup_dir / LOCK_FILENAME), timeout=settings.backup_lock_timeout)
    start_time = time.time()

    try:
        with lock:
            logger.debug(f"Lock acquired for {name}")
            result = asyncio.run(coro_factory(state))
    except Timeout:
        logger.error(f"{name}: lock timeout ({settings.backup_lock_timeout}s)")
        return {"success": False, "message": f"Lock timeout ({settings.backup_lock_timeout}s)"}

    elapsed = round(time.time() - start_time, 3)
    result["processing_time_seconds"] = elapsed
    logger.info(f"{name} completed in {elapsed}s: {result}")
    return result


# =============================================================================
# CELERY TASKS
# =============================================================================

@celery_app.task(name="pastificio.tasks.full_backup")
def full_backup() -> dict:
    return _run_locked("full_backup", lambda state: _with_snapshot(run_full_backup, state))


@celery_app.task(name="pastificio.tasks.incremental_backup")
def incremental_backup() -> dict:
    return _run_locked("incremental_backup", lambda state: _with_snapshot(run_incremental_backup, state))


@celery_app.task(name="pastificio.tasks.cleanup_backups")
def cleanup_backups() -> dict:
    return _run_locked("cleanup_backups", run_cleanup)


@celery_app.task(name="pastificio.tasks.check_backup_size")
def check_backup_size() -> dict:
    return _run_locked("check_backup_size", run_size_check)


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
