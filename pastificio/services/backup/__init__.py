"""
Backup Pipeline

    ArchiveCodec       - payload <-> archive file (gzip / Fernet stages)
    BackupStore        - listing, retention sweep, size monitoring
    IncrementalBackup  - differential archives against the last full backup

Usage:
    from pastificio.services.backup import ArchiveCodec, BackupStore

    codec = ArchiveCodec(settings.backup_path, settings.backup_encryption_key)
    store = BackupStore(codec, retention_days=7)
    archives = await store.list_backups()

Author: Khalil Bannouri
Version: 1.0.0
"""

from pastificio.services.backup.codec import ArchiveCodec
from pastificio.services.backup.differ import (
    IncrementalBackup,
    apply_changeset,
    compute_changeset,
)
from pastificio.services.backup.schemas import (
    Archive,
    ArchiveEnvelope,
    ArchiveMetadata,
    ArchiveType,
    ChangeSet,
    DeltaOp,
    RecordDelta,
    Snapshot,
)
from pastificio.services.backup.store import BackupStore, sweep_temp_files

__all__ = [
    "ArchiveCodec",
    "BackupStore",
    "IncrementalBackup",
    "apply_changeset",
    "compute_changeset",
    "sweep_temp_files",
    "Archive",
    "ArchiveEnvelope",
    "ArchiveMetadata",
    "ArchiveType",
    "ChangeSet",
    "DeltaOp",
    "RecordDelta",
    "Snapshot",
]
