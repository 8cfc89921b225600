"""Stream transforms placed between archive extraction and the write target.

The decompressor shipped inside each update is an external program that
reads compressed bytes on stdin and writes raw bytes on stdout. The same
wrapper runs the compressor in pack mode.
"""

import asyncio
import logging
from contextlib import aclosing, suppress
from typing import AsyncIterator, Protocol, Sequence

from ereader_updater.errors import DecompressionError


class StreamTransform(Protocol):
    def transform(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        ...


class IdentityTransform:
    """Passes bytes through unchanged."""

    async def transform(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        async with aclosing(chunks):
            async for chunk in chunks:
                yield chunk


class CommandTransform:
    """Pipes a byte stream through an external program."""

    def __init__(self, argv: Sequence[str], chunk_size: int = 1024 * 1024):
        """Initialize command transform.

        Args:
            argv: Program and arguments, e.g. ["/tmp/updater/decompressor"]
            chunk_size: Read size for the program's output
        """
        if not argv:
            raise ValueError("argv must name a program")
        self.logger = logging.getLogger("ereader_updater.transform")
        self.argv = [str(a) for a in argv]
        self.chunk_size = chunk_size

    async def transform(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Feed chunks to the program and yield its output.

        Raises:
            DecompressionError: If the program cannot start or exits non-zero
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DecompressionError(f"cannot run {self.argv[0]}: {e}") from e

        feeder = asyncio.create_task(self._feed(process, chunks))
        finished = False
        try:
            while data := await process.stdout.read(self.chunk_size):
                yield data
            await feeder
            returncode = await process.wait()
            finished = True
        finally:
            if not finished:
                feeder.cancel()
                with suppress(asyncio.CancelledError):
                    await feeder
                if process.returncode is None:
                    process.kill()
                    await process.wait()

        if returncode != 0:
            raise DecompressionError(
                f"{self.argv[0]} exited with status {returncode}"
            )

    async def _feed(self, process, chunks: AsyncIterator[bytes]) -> None:
        try:
            async with aclosing(chunks):
                async for chunk in chunks:
                    process.stdin.write(chunk)
                    await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The program stopped reading; its exit status is checked by the caller.
            self.logger.debug(f"{self.argv[0]} closed its input early")
        finally:
            process.stdin.close()
