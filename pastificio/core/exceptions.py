"""
Application Error Taxonomy

Backup failures are split by where in the archive pipeline they happen so
that callers can tell a misconfiguration from a damaged file:

    ConfigError          - a required secret is not configured
    DecryptionError      - the cipher stage rejected the bytes (wrong key)
    CorruptArchiveError  - bytes did not parse after the inverse pipeline
    ArchiveIOError       - the filesystem failed (read/write/delete/list)

Report windows that make no sense raise ReportValidationError, which is a
ValueError so FastAPI handlers and plain callers can treat it as bad input.
A loyalty points change that would overdraw a customer raises
LoyaltyPointsError, also a ValueError.

Author: Khalil Bannouri
Version: 1.0.0
"""

from typing import Optional


class PastificioError(Exception):
    """Base class for all application errors."""


class BackupError(PastificioError):
    """Base class for backup pipeline errors."""

    def __init__(self, message: str, filename: Optional[str] = None):
        super().__init__(message)
        self.filename = filename


class ConfigError(BackupError):
    """A required configuration value (e.g. encryption key) is missing."""


class CorruptArchiveError(BackupError):
    """Archive payload failed to parse after the inverse pipeline."""


class DecryptionError(BackupError):
    """The decryption stage failed (wrong or missing key, tampered file)."""


class ArchiveIOError(BackupError, OSError):
    """Filesystem failure while reading, writing, deleting or listing."""


class ArchiveNotFoundError(ArchiveIOError):
    """The requested archive does not exist in the backup directory."""


class ReportValidationError(PastificioError, ValueError):
    """A report was requested with an invalid time window or format."""


class LoyaltyPointsError(PastificioError, ValueError):
    """A points change would leave a customer with a negative balance."""
