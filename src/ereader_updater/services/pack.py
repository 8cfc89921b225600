"""Pack mode: build an update archive from an overlay tarball."""

import logging
import tarfile
from pathlib import Path

from ereader_updater.config import DECOMPRESSOR_ENTRY, MANIFEST_ENTRY, OVERLAY_ENTRY
from ereader_updater.errors import DecompressionError, PackError
from ereader_updater.models.manifest import ChecksumEntry, ChecksumManifest
from ereader_updater.services.pipeline import iter_bytes, write_blocks
from ereader_updater.services.transform import StreamTransform
from ereader_updater.utils.verification import compute_sha256

DRIVER_FILE = "driver.sh"
DECOMPRESSOR_FILE = "decompressor.sh"


class PackService:
    """Builds ``<archive>`` from files in a working directory.

    Expected inputs: KoboRoot.tgz, driver.sh and decompressor.sh. The overlay
    is stored as the gzip tarball it already is, so stage1 can test and apply
    it without the decompressor. The checksum manifest is stored compressed
    because stage1 reads it back through the decompressor shipped alongside.
    """

    def __init__(self, work_dir: Path, compressor: StreamTransform):
        self.logger = logging.getLogger("ereader_updater.pack")
        self.work_dir = Path(work_dir)
        self.compressor = compressor

    async def pack(self, output: Path) -> Path:
        """Build the update archive.

        Args:
            output: Archive path to create (replaced atomically)

        Returns:
            Path of the written archive

        Raises:
            PackError: If inputs are missing or compression fails
        """
        overlay = self.work_dir / OVERLAY_ENTRY
        if not overlay.is_file():
            self.logger.error(f"{OVERLAY_ENTRY} not present, aborting!")
            raise PackError(f"{OVERLAY_ENTRY} not present in {self.work_dir}")

        driver = self.work_dir / DRIVER_FILE
        decompressor = self.work_dir / DECOMPRESSOR_FILE
        for required in (driver, decompressor):
            if not required.is_file():
                self.logger.error(f"{required.name} not present, aborting!")
                raise PackError(f"{required.name} not present in {self.work_dir}")

        manifest_file = self.work_dir / f"{MANIFEST_ENTRY}.zst"
        output = Path(output)
        tmp_output = output.parent / f"{output.name}.tmp"
        try:
            contents = {
                OVERLAY_ENTRY: overlay,
                DRIVER_FILE: driver,
                DECOMPRESSOR_ENTRY: decompressor,
            }
            manifest = ChecksumManifest(
                entries=[
                    ChecksumEntry(digest=compute_sha256(path), name=name)
                    for name, path in contents.items()
                ]
            )
            self.logger.info(f"Compressing {MANIFEST_ENTRY}...")
            await self._compress(
                iter_bytes(manifest.render().encode("utf-8")), manifest_file
            )
            contents[MANIFEST_ENTRY] = manifest_file

            self.logger.info(f"Packing files into {output}")
            output.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(tmp_output, "w") as tar:
                for name, path in contents.items():
                    info = tar.gettarinfo(str(path), arcname=name)
                    if name in (DECOMPRESSOR_ENTRY, DRIVER_FILE):
                        info.mode = 0o755
                    else:
                        info.mode = 0o644
                    with open(path, "rb") as f:
                        tar.addfile(info, f)
            tmp_output.replace(output)
        except OSError as e:
            raise PackError(f"writing {output}: {e}") from e
        finally:
            tmp_output.unlink(missing_ok=True)
            manifest_file.unlink(missing_ok=True)

        self.logger.info(f"{OVERLAY_ENTRY} repacked!")
        return output

    async def _compress(self, source, dest: Path) -> None:
        try:
            await write_blocks(self.compressor.transform(source), dest)
        except DecompressionError as e:
            dest.unlink(missing_ok=True)
            raise PackError(f"compressing {dest.name}: {e.detail}") from e
