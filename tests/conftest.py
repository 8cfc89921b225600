"""Global pytest fixtures and configuration."""

import hashlib
import io
import sys
import tarfile
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ereader_updater.config import UpdaterConfig  # noqa: E402

CAT_DECOMPRESSOR = b"#!/bin/sh\nexec cat\n"
FAILING_DECOMPRESSOR = b"#!/bin/sh\ncat >/dev/null\necho corrupt input >&2\nexit 3\n"

# label -> device node name, as udev lays them out on the device
PARTITION_NODES = {
    "recovery": "mmcblk0p4",
    "system_a": "mmcblk0p5",
    "vendor": "mmcblk0p7",
    "hwcfg": "mmcblk0p1",
}


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def build_archive(path: Path, entries: dict, modes: dict = None) -> Path:
    """Write a tar archive with the given ``name -> bytes`` entries."""
    modes = modes or {}
    with tarfile.open(path, "w") as tar:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = modes.get(name, 0o644)
            tar.addfile(info, io.BytesIO(data))
    return path


def update_entries(images: dict, manifest_names=None, decompressor=CAT_DECOMPRESSOR) -> dict:
    """Archive content with a decompressor and a matching sha2-256sums manifest.

    Args:
        images: Payload entries to include
        manifest_names: Entries to list in the manifest (defaults to all payloads)
        decompressor: Script stored as the decompressor entry
    """
    entries = {"decompressor": decompressor}
    entries.update(images)
    names = list(images) if manifest_names is None else manifest_names
    manifest = "".join(f"{sha256(entries[n])}  {n}\n" for n in names)
    entries["sha2-256sums"] = manifest.encode()
    return entries


@pytest.fixture
def make_archive(tmp_path):
    """Factory building update archives in tmp_path."""

    def _make(entries: dict, name: str = "update.tar", modes: dict = None) -> Path:
        modes = dict(modes or {})
        modes.setdefault("decompressor", 0o755)
        return build_archive(tmp_path / name, entries, modes)

    return _make


@pytest.fixture
def partlabel_dir(tmp_path):
    """Fake /dev/disk/by-partlabel: symlinks to regular files standing in for nodes."""
    dev = tmp_path / "dev"
    by_label = dev / "disk" / "by-partlabel"
    by_label.mkdir(parents=True)
    for label, node in PARTITION_NODES.items():
        node_path = dev / node
        node_path.write_bytes(b"")
        (by_label / label).symlink_to(node_path)
    return by_label


@pytest.fixture
def device_node(partlabel_dir):
    """Return the backing file for a partition label."""

    def _node(label: str) -> Path:
        return (partlabel_dir / label).resolve()

    return _node


@pytest.fixture
def config(tmp_path, partlabel_dir):
    """UpdaterConfig pointing every path into tmp_path."""
    live_root = tmp_path / "root"
    live_root.mkdir()
    return UpdaterConfig(
        scratch_dir=tmp_path / "scratch",
        partlabel_dir=partlabel_dir,
        live_root=live_root,
        revinfo_file=tmp_path / "kobo" / "revinfo",
        install_log=tmp_path / "kobo" / "install.log",
        overlay_marker=tmp_path / "kobo" / ".overlay-sha256",
        recovery_rootfs=tmp_path / "recovery" / "rootfs.ext4.zst",
        log_file=tmp_path / "logs" / "updater.log",
        block_size=64 * 1024,
    )


class FakeHwConfigStore:
    """Records hwconfig writes instead of calling ntx_hwconfig."""

    def __init__(self):
        self.values = {}
        self.calls = []

    async def set_value(self, key: str, value: int) -> None:
        self.calls.append((key, value))
        self.values[key] = value


@pytest.fixture
def hwconfig_store():
    return FakeHwConfigStore()


@pytest.fixture
def update_content():
    """Expose update_entries() to tests."""
    return update_entries


@pytest.fixture
def decompressors():
    return {"cat": CAT_DECOMPRESSOR, "failing": FAILING_DECOMPRESSOR}
