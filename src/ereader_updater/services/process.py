"""Runs external helper programs (hwconfig tool, update script)."""

import asyncio
import logging
from typing import Sequence

from ereader_updater.errors import CommandError


class ProcessRunner:
    """Thin asyncio wrapper around subprocess execution."""

    def __init__(self):
        self.logger = logging.getLogger("ereader_updater.process")

    async def run(self, argv: Sequence[str]) -> str:
        """Run a program to completion.

        Args:
            argv: Program and arguments

        Returns:
            Decoded stdout

        Raises:
            CommandError: If the program cannot be started or exits non-zero
        """
        argv = [str(a) for a in argv]
        self.logger.debug(f"Running: {' '.join(argv)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandError(argv, None, str(e)) from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise CommandError(
                argv, process.returncode, stderr.decode(errors="replace")
            )
        return stdout.decode(errors="replace")
