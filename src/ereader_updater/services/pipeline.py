"""Streaming helpers shared by the flasher, overlay and pack services."""

import asyncio
import logging
import os
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator

import aiofiles

from ereader_updater.errors import FlashError
from ereader_updater.services.archive import UpdateArchive
from ereader_updater.services.transform import StreamTransform

BLOCK_SIZE = 4 * 1024 * 1024  # 4MiB, matches erase/write granularity of the eMMC

logger = logging.getLogger("ereader_updater.pipeline")


async def iter_file(path: Path, chunk_size: int = 1024 * 1024) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while chunk := await f.read(chunk_size):
            yield chunk


async def iter_bytes(data: bytes) -> AsyncIterator[bytes]:
    yield data


async def write_blocks(
    chunks: AsyncIterator[bytes], target: Path, block_size: int = BLOCK_SIZE
) -> int:
    """Write a stream to a file or block device in fixed-size blocks.

    The final block may be shorter. Data is fsync'ed before returning.

    Args:
        chunks: Source stream
        target: Device node or file path
        block_size: Size of each write

    Returns:
        Number of bytes written

    Raises:
        FlashError: On a short write
        OSError: If the target cannot be opened or written
    """
    written = 0
    pending = bytearray()
    async with aclosing(chunks), aiofiles.open(target, "wb", buffering=0) as out:
        async for chunk in chunks:
            pending += chunk
            while len(pending) >= block_size:
                written += await _write_block(out, target, bytes(pending[:block_size]))
                del pending[:block_size]
        if pending:
            written += await _write_block(out, target, bytes(pending))
        await asyncio.to_thread(os.fsync, out.fileno())
    logger.debug(f"Wrote {written} bytes to {target}")
    return written


async def _write_block(out, target: Path, block: bytes) -> int:
    count = await out.write(block)
    if count != len(block):
        raise FlashError(f"short write to {target}: {count} of {len(block)} bytes")
    return count


async def extract_entry(
    archive: UpdateArchive,
    name: str,
    transform: StreamTransform,
    dest: Path,
    block_size: int = BLOCK_SIZE,
) -> int:
    """Extract an archive entry through a transform into a file.

    A partially written destination is removed on failure.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        return await write_blocks(
            transform.transform(archive.iter_entry(name)), dest, block_size
        )
    except BaseException:
        dest.unlink(missing_ok=True)
        raise
