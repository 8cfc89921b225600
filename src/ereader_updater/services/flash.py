"""Image flashing: archive entry -> decompressor -> partition."""

import logging
from pathlib import Path
from typing import AsyncIterator

from ereader_updater.errors import FlashError, UpdaterError
from ereader_updater.models.results import FlashResult
from ereader_updater.services.archive import UpdateArchive
from ereader_updater.services.partitions import PartitionResolver
from ereader_updater.services.pipeline import BLOCK_SIZE, iter_file, write_blocks
from ereader_updater.services.transform import StreamTransform


class ImageFlasher:
    """Writes compressed images onto partitions addressed by label.

    Failure policy: an image missing from the archive is skipped, everything
    else (missing partition, decompression failure, write error) is fatal.
    """

    def __init__(
        self,
        archive: UpdateArchive,
        decompressor: StreamTransform,
        resolver: PartitionResolver,
        block_size: int = BLOCK_SIZE,
    ):
        self.logger = logging.getLogger("ereader_updater.flash")
        self.archive = archive
        self.decompressor = decompressor
        self.resolver = resolver
        self.block_size = block_size

    def _check_partition(self, entry: str, label: str):
        if self.resolver.exists(label):
            return None
        reason = f"Partlabel {label} does not exist!"
        self.logger.error(reason)
        return FlashResult.failed_fatal(entry, label, reason)

    async def try_flash_image(self, entry: str, label: str) -> FlashResult:
        """Flash an archive entry to a partition.

        The partition is checked before the archive is consulted, so a device
        mismatch is reported even for images this update does not carry.

        Args:
            entry: Archive entry name, e.g. "rootfs.img"
            label: Partition label, e.g. "system_a"

        Returns:
            FlashResult tagged flashed, skipped_absent or failed_fatal
        """
        missing = self._check_partition(entry, label)
        if missing is not None:
            return missing

        if not self.archive.has_entry(entry):
            self.logger.info(f"NOT flashing {entry}")
            return FlashResult.skipped_absent(entry, label)

        self.logger.info(f"Flashing {entry} to {label}...")
        return await self._write(entry, label, self.archive.iter_entry(entry))

    async def try_flash_file(self, path: Path, label: str) -> FlashResult:
        """Flash a compressed image from the local filesystem."""
        entry = str(path)
        missing = self._check_partition(entry, label)
        if missing is not None:
            return missing

        if not Path(path).is_file():
            reason = f"{path} does not exist"
            self.logger.error(reason)
            return FlashResult.failed_fatal(entry, label, reason)

        self.logger.info(f"Flashing {path} to {label}...")
        return await self._write(entry, label, iter_file(Path(path)))

    async def flash_image(self, entry: str, label: str) -> FlashResult:
        """Best-effort flash: an absent entry is a no-op, anything else fatal.

        Raises:
            FlashError: If the flash failed for any reason but absence
        """
        return self._raise_if_fatal(await self.try_flash_image(entry, label))

    async def flash_file(self, path: Path, label: str) -> FlashResult:
        return self._raise_if_fatal(await self.try_flash_file(path, label))

    @staticmethod
    def _raise_if_fatal(result: FlashResult) -> FlashResult:
        if result.is_fatal:
            raise FlashError(f"{result.entry} -> {result.partition}: {result.reason}")
        return result

    async def _write(
        self, entry: str, label: str, source: AsyncIterator[bytes]
    ) -> FlashResult:
        target = self.resolver.device_path(label)
        try:
            written = await write_blocks(
                self.decompressor.transform(source), target, self.block_size
            )
        except (UpdaterError, OSError) as e:
            reason = str(e)
            self.logger.error(f"Flashing {entry} to {label} failed: {reason}")
            return FlashResult.failed_fatal(entry, label, reason)

        self.logger.info(f"Flashed {entry} to {label} ({written} bytes)")
        return FlashResult.flashed(entry, label, written)
