"""Partition label resolution via the OS by-partlabel links."""

import logging
import os
import re
from pathlib import Path
from typing import Protocol

from ereader_updater.errors import PartitionError

_TRAILING_DIGITS = re.compile(r"(\d+)$")


class PartitionResolver(Protocol):
    def exists(self, label: str) -> bool:
        ...

    def device_path(self, label: str) -> Path:
        ...

    def resolve(self, label: str) -> Path:
        ...

    def partition_number(self, label: str) -> int:
        ...


class ByLabelResolver:
    """Resolves labels through a directory of symlinks (``/dev/disk/by-partlabel``)."""

    def __init__(self, base_dir: Path = Path("/dev/disk/by-partlabel")):
        self.logger = logging.getLogger("ereader_updater.partitions")
        self.base_dir = Path(base_dir)

    def device_path(self, label: str) -> Path:
        if not label or "/" in label or label in (".", ".."):
            raise PartitionError(f"invalid partition label: {label!r}")
        return self.base_dir / label

    def exists(self, label: str) -> bool:
        # Path.exists follows the link, so a dangling label counts as missing.
        return self.device_path(label).exists()

    def resolve(self, label: str) -> Path:
        """Return the canonical device node behind a label.

        Raises:
            PartitionError: If the label does not resolve to an existing node
        """
        if not self.exists(label):
            raise PartitionError(f"Partlabel {label} does not exist!")
        return Path(os.path.realpath(self.device_path(label)))

    def partition_number(self, label: str) -> int:
        """Extract the partition index from the device node name.

        ``/dev/mmcblk0p5`` -> 5

        Raises:
            PartitionError: If the label is missing or the node has no index
        """
        node = self.resolve(label)
        match = _TRAILING_DIGITS.search(node.name)
        if match is None:
            raise PartitionError(f"{node} (label {label}) has no partition number")
        number = int(match.group(1))
        self.logger.debug(f"Label {label} -> {node} -> partition {number}")
        return number
