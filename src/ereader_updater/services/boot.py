"""Boot partition selection through the hardware configuration store."""

import logging
from pathlib import Path
from typing import Optional, Protocol

from ereader_updater.errors import CommandError, HwConfigError
from ereader_updater.services.partitions import PartitionResolver
from ereader_updater.services.process import ProcessRunner

BOOT_PART_KEY = "BootPartNo"

ROLE_LABELS = {
    "recovery": "recovery",
    "root": "system_a",
}


class HwConfigStore(Protocol):
    async def set_value(self, key: str, value: int) -> None:
        ...


class NtxHwConfigStore:
    """Writes keys with the vendor ``ntx_hwconfig`` tool."""

    def __init__(
        self,
        device: Path,
        tool: str = "ntx_hwconfig",
        runner: Optional[ProcessRunner] = None,
    ):
        self.device = Path(device)
        self.tool = tool
        self.runner = runner or ProcessRunner()

    async def set_value(self, key: str, value: int) -> None:
        try:
            await self.runner.run(
                [self.tool, "-S", "1", "-p", str(self.device), key, str(value)]
            )
        except CommandError as e:
            raise HwConfigError(f"setting {key}={value}: {e.detail}") from e


class BootPartitionSelector:
    """Points the bootloader at the recovery or root partition."""

    def __init__(self, resolver: PartitionResolver, store: HwConfigStore):
        self.logger = logging.getLogger("ereader_updater.boot")
        self.resolver = resolver
        self.store = store

    async def set_boot_partition(self, role: str) -> int:
        """Persist the partition number for ``role`` as the next boot target.

        Args:
            role: "recovery" or "root"

        Returns:
            The partition number written

        Raises:
            ValueError: If role is not one of the fixed roles
            PartitionError: If the partition cannot be resolved
            HwConfigError: If the store rejects the write
        """
        try:
            label = ROLE_LABELS[role]
        except KeyError:
            raise ValueError(f"Invalid boot role: {role!r}") from None

        partno = self.resolver.partition_number(label)
        self.logger.info(f"Setting boot partition number to {partno}")
        await self.store.set_value(BOOT_PART_KEY, partno)
        return partno
