"""Runtime configuration for the updater.

All paths default to the locations used on the device. Each field can be
overridden from the environment with an ``UPDATER_`` prefixed variable, e.g.
``UPDATER_SCRATCH_DIR=/tmp/other``.
"""

import os
import shlex
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "UPDATER_"

DECOMPRESSOR_ENTRY = "decompressor"
MANIFEST_ENTRY = "sha2-256sums"
OVERLAY_ENTRY = "KoboRoot.tgz"
UPDATE_SCRIPT_ENTRY = "update_script"
STOCK_ROOTFS_MARKER = "stock-rootfs"
ROOTFS_IMAGE = "rootfs.img"
VENDOR_IMAGE = "vendor.img"


class UpdaterConfig(BaseModel):
    """Paths, commands and switches used by the services."""

    scratch_dir: Path = Field(
        Path("/tmp/updater"), description="Scratch space for staged files"
    )
    partlabel_dir: Path = Field(
        Path("/dev/disk/by-partlabel"), description="OS label -> device node links"
    )
    hwconfig_tool: str = Field("ntx_hwconfig", description="Hardware config CLI")
    hwconfig_label: str = Field("hwcfg", description="Partition holding hwconfig")
    live_root: Path = Field(Path("/"), description="Root the overlay is applied to")
    revinfo_file: Path = Field(Path("/usr/local/Kobo/revinfo"))
    install_log: Path = Field(Path("/usr/local/Kobo/install.log"))
    overlay_marker: Path = Field(
        Path("/usr/local/Kobo/.overlay-sha256"),
        description="Digest of the last overlay applied to the live root",
    )
    recovery_rootfs: Path = Field(
        Path("/recovery/rootfs.ext4.zst"),
        description="Rootfs image shipped inside the recovery filesystem",
    )
    block_size: int = Field(4 * 1024 * 1024, gt=0, description="Device write size")
    read_chunk_size: int = Field(1024 * 1024, gt=0)
    compressor_command: str = Field("zstd -q -c", description="Used by pack mode")
    flash_rootfs: bool = True
    flash_vendor: bool = True
    run_update_script: bool = False
    log_file: Path = Field(Path("/tmp/updater.log"))
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    @property
    def decompressor_path(self) -> Path:
        return self.scratch_dir / DECOMPRESSOR_ENTRY

    @property
    def compressor_argv(self) -> list[str]:
        return shlex.split(self.compressor_command)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UpdaterConfig":
        """Build configuration from ``UPDATER_*`` environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Validated UpdaterConfig
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in environ:
                values[name] = environ[key]
        return cls(**values)
