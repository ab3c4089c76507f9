"""
Process-scoped Service State

One object owns the long-lived backup components instead of module-level
globals. The FastAPI lifespan builds it at startup, stores it on
`app.state.services` and shuts it down on exit; Celery tasks build their
own per run.

Lifecycle:
    state = ServiceState.from_settings(get_settings())
    await state.startup()     # creates directories
    ...
    await state.shutdown()

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional

from fastapi import Request

from pastificio.core.config import Settings
from pastificio.services.backup import ArchiveCodec, BackupStore, IncrementalBackup

logger = logging.getLogger(__name__)


class ServiceState:
    """Backup codec, store and incremental service sharing one directory."""

    def __init__(
        self,
        settings: Settings,
        codec: ArchiveCodec,
        store: BackupStore,
        incremental: IncrementalBackup,
    ):
        self.settings = settings
        self.codec = codec
        self.store = store
        self.incremental = incremental
        self.started = False

    @classmethod
    def from_settings(cls, settings: Settings, encryption_key: Optional[str] = None) -> "ServiceState":
        codec = ArchiveCodec(
            backup_dir=settings.backup_path,
            encryption_key=encryption_key or settings.backup_encryption_key,
            compression_level=settings.backup_compression_level,
        )
        store = BackupStore(codec, retention_days=settings.backup_retention_days)
        return cls(
            settings=settings,
            codec=codec,
            store=store,
            incremental=IncrementalBackup(codec, store),
        )

    async def startup(self) -> None:
        self.codec.ensure_directory()
        self.settings.temp_path.mkdir(parents=True, exist_ok=True)
        self.started = True
        logger.info(
            f"Backup services ready: dir={self.codec.backup_dir}, "
            f"retention={self.store.retention_days}d, "
            f"encryption={'on' if self.codec.encryption_key else 'off'}"
        )

    async def shutdown(self) -> None:
        self.started = False
        logger.info("Backup services stopped")


def get_services(request: Request) -> ServiceState:
    """FastAPI dependency returning the application's ServiceState."""
    return request.app.state.services
