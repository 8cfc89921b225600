"""SHA-256 verification utilities for archive content checking."""

import hashlib
import logging
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Protocol

SHA256_HEX_LENGTH = 64


class HashVerifier(Protocol):
    """Computes a content hash over a byte stream."""

    async def digest(self, chunks: AsyncIterator[bytes]) -> str:
        ...


class Sha256Verifier:
    """hashlib-backed sha256, fed incrementally so entries are never held in memory."""

    async def digest(self, chunks: AsyncIterator[bytes]) -> str:
        sha = hashlib.sha256()
        async with aclosing(chunks):
            async for chunk in chunks:
                sha.update(chunk)
        return sha.hexdigest()


def compute_sha256(file_path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to file to hash
        chunk_size: Read buffer size

    Returns:
        64-character lowercase hex digest

    Raises:
        FileNotFoundError: If file doesn't exist
        OSError: If file read fails
    """
    logger = logging.getLogger("ereader_updater.verification")
    sha = hashlib.sha256()

    try:
        with open(file_path, "rb") as f:
            while chunk := f.read(chunk_size):
                sha.update(chunk)
    except FileNotFoundError:
        logger.error(f"File not found: {file_path}")
        raise

    result = sha.hexdigest()
    logger.debug(f"Computed sha256 for {file_path.name}: {result}")
    return result


def digests_match(expected: str, actual: str) -> bool:
    """Compare two hex digests, ignoring case.

    Raises:
        ValueError: If expected is not a 64-char hex string
    """
    if not isinstance(expected, str) or len(expected) != SHA256_HEX_LENGTH:
        raise ValueError(f"Invalid sha256 format: {expected} (must be 64-char hex)")
    return expected.lower() == actual.lower()
