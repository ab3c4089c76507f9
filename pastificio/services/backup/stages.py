"""
Archive Transform Stages

Each stage is a named pair of pure bytes -> bytes functions plus the
filename suffix it contributes. An archive pipeline is an ordered list of
stages; writing applies them in order, reading applies the inverses in
reverse order.

Because every stage appends its suffix, the filename alone tells the
reader which stages to undo:

    orders            -> []
    orders.gz         -> [gzip]
    orders.gz.enc     -> [gzip, fernet]

Encryption uses Fernet (AES-128-CBC + HMAC-SHA256). The configured secret
is an arbitrary string, so the Fernet key is derived from it with
PBKDF2-HMAC-SHA256.

Author: Khalil Bannouri
Version: 1.0.0
"""

import base64
import gzip
import logging
import zlib
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from pastificio.core.exceptions import ConfigError, CorruptArchiveError, DecryptionError

logger = logging.getLogger(__name__)

GZIP_SUFFIX = ".gz"
ENCRYPTED_SUFFIX = ".enc"

KDF_SALT = b"pastificio-backup-salt"
KDF_ITERATIONS = 100_000


@dataclass(frozen=True)
class TransformStage:
    """A reversible bytes transform that owns one filename suffix."""
    name: str
    suffix: str
    forward: Callable[[bytes], bytes]
    inverse: Callable[[bytes], bytes]


# =============================================================================
# GZIP
# =============================================================================

def gzip_stage(level: int = 6) -> TransformStage:
    if not 1 <= level <= 9:
        raise ValueError(f"Compression level must be between 1 and 9, got {level}")

    def compress(data: bytes) -> bytes:
        return gzip.compress(data, compresslevel=level)

    def decompress(data: bytes) -> bytes:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CorruptArchiveError(f"gzip stream is damaged: {e}") from e

    return TransformStage(
        name="gzip",
        suffix=GZIP_SUFFIX,
        forward=compress,
        inverse=decompress,
    )


# =============================================================================
# FERNET
# =============================================================================

@lru_cache(maxsize=8)
def derive_key(secret: str) -> bytes:
    """Derive a urlsafe-base64 Fernet key from an arbitrary secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


def fernet_stage(secret: Optional[str]) -> TransformStage:
    if not secret:
        raise ConfigError("Encryption requested but BACKUP_ENCRYPTION_KEY is not configured")

    cipher = Fernet(derive_key(secret))

    def decrypt(data: bytes) -> bytes:
        try:
            return cipher.decrypt(data)
        except InvalidToken as e:
            raise DecryptionError("Archive could not be decrypted (wrong key or tampered file)") from e

    return TransformStage(
        name="fernet",
        suffix=ENCRYPTED_SUFFIX,
        forward=cipher.encrypt,
        inverse=decrypt,
    )


# =============================================================================
# PIPELINES
# =============================================================================

def build_pipeline(
    compress: bool = True,
    encrypt: bool = False,
    compression_level: int = 6,
    secret: Optional[str] = None,
) -> list[TransformStage]:
    """Stages for writing, in application order (compress before encrypt)."""
    stages = []
    if compress:
        stages.append(gzip_stage(compression_level))
    if encrypt:
        stages.append(fernet_stage(secret))
    return stages


def run_forward(stages: list[TransformStage], data: bytes) -> bytes:
    for stage in stages:
        data = stage.forward(data)
    return data


def run_inverse(stages: list[TransformStage], data: bytes) -> bytes:
    for stage in reversed(stages):
        logger.debug(f"Undoing stage {stage.name}")
        data = stage.inverse(data)
    return data


def archive_filename(base_name: str, stages: list[TransformStage]) -> str:
    return base_name + "".join(stage.suffix for stage in stages)


def strip_suffixes(filename: str) -> str:
    """Remove every trailing pipeline suffix (`x.gz.enc` -> `x`)."""
    while True:
        for suffix in (ENCRYPTED_SUFFIX, GZIP_SUFFIX):
            if filename.endswith(suffix) and len(filename) > len(suffix):
                filename = filename[: -len(suffix)]
                break
        else:
            return filename


def infer_pipeline(filename: str, secret: Optional[str] = None) -> list[TransformStage]:
    """
    Rebuild the write pipeline of an archive from its suffix chain.

    The returned list is in write order; pass it to run_inverse() to read.
    Raises ConfigError when the file is encrypted but no secret is set.
    """
    peeled = []
    name = filename
    while True:
        if name.endswith(ENCRYPTED_SUFFIX) and len(name) > len(ENCRYPTED_SUFFIX):
            peeled.append(fernet_stage(secret))
            name = name[: -len(ENCRYPTED_SUFFIX)]
        elif name.endswith(GZIP_SUFFIX) and len(name) > len(GZIP_SUFFIX):
            # Level only matters when compressing
            peeled.append(gzip_stage())
            name = name[: -len(GZIP_SUFFIX)]
        else:
            break
    peeled.reverse()
    return peeled
