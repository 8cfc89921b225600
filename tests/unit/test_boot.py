"""Unit tests for boot partition selection."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from ereader_updater.errors import CommandError, HwConfigError, PartitionError
from ereader_updater.services.boot import (
    BOOT_PART_KEY,
    BootPartitionSelector,
    NtxHwConfigStore,
)
from ereader_updater.services.partitions import ByLabelResolver


@pytest.mark.unit
class TestBootPartitionSelector:
    """Test role to partition number mapping and the hwconfig write."""

    @pytest.fixture
    def selector(self, partlabel_dir, hwconfig_store):
        return BootPartitionSelector(ByLabelResolver(partlabel_dir), hwconfig_store)

    @pytest.mark.asyncio
    async def test_root_role(self, selector, hwconfig_store):
        """Test root maps to system_a (mmcblk0p5)."""
        # Act
        partno = await selector.set_boot_partition("root")

        # Assert
        assert partno == 5
        assert hwconfig_store.calls == [(BOOT_PART_KEY, 5)]

    @pytest.mark.asyncio
    async def test_recovery_role(self, selector, hwconfig_store):
        """Test recovery maps to mmcblk0p4."""
        # Act
        await selector.set_boot_partition("recovery")

        # Assert
        assert hwconfig_store.values == {"BootPartNo": 4}

    @pytest.mark.asyncio
    async def test_invalid_role_is_programming_error(self, selector, hwconfig_store):
        """Test an unknown role raises ValueError and writes nothing."""
        # Act / Assert
        with pytest.raises(ValueError, match="Invalid boot role"):
            await selector.set_boot_partition("default")

        assert hwconfig_store.calls == []

    @pytest.mark.asyncio
    async def test_missing_partition(self, selector, partlabel_dir, hwconfig_store):
        """Test a missing partlabel raises PartitionError and writes nothing."""
        # Arrange
        (partlabel_dir / "system_a").unlink()

        # Act / Assert
        with pytest.raises(PartitionError):
            await selector.set_boot_partition("root")

        assert hwconfig_store.calls == []


@pytest.mark.unit
class TestNtxHwConfigStore:
    """Test the ntx_hwconfig command line."""

    @pytest.mark.asyncio
    async def test_invokes_tool(self):
        """Test the tool is called with the hwcfg device, key and value."""
        # Arrange
        runner = AsyncMock()
        store = NtxHwConfigStore(Path("/dev/disk/by-partlabel/hwcfg"), runner=runner)

        # Act
        await store.set_value("BootPartNo", 5)

        # Assert
        runner.run.assert_awaited_once_with(
            ["ntx_hwconfig", "-S", "1", "-p", "/dev/disk/by-partlabel/hwcfg", "BootPartNo", "5"]
        )

    @pytest.mark.asyncio
    async def test_tool_failure(self):
        """Test a failing tool becomes HwConfigError."""
        # Arrange
        runner = AsyncMock()
        runner.run.side_effect = CommandError(["ntx_hwconfig"], 1, "bad partition")
        store = NtxHwConfigStore(Path("/dev/hwcfg"), runner=runner)

        # Act / Assert
        with pytest.raises(HwConfigError, match="BootPartNo=5"):
            await store.set_value("BootPartNo", 5)
