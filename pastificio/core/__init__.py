"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from pastificio.core.config import get_settings, Settings, EnvironmentMode
from pastificio.core.exceptions import (
    PastificioError,
    BackupError,
    ConfigError,
    CorruptArchiveError,
    DecryptionError,
    ArchiveIOError,
    ArchiveNotFoundError,
    ReportValidationError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "PastificioError",
    "BackupError",
    "ConfigError",
    "CorruptArchiveError",
    "DecryptionError",
    "ArchiveIOError",
    "ArchiveNotFoundError",
    "ReportValidationError",
]
