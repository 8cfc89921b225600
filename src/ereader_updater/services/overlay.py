"""In-place overlay (KoboRoot.tgz) application for stage1."""

import gzip
import logging
import tarfile
import zlib
from pathlib import Path, PurePosixPath

from ereader_updater.config import OVERLAY_ENTRY, UpdaterConfig
from ereader_updater.errors import ArchiveError, DecompressionError, OverlayError
from ereader_updater.services.archive import UpdateArchive
from ereader_updater.services.pipeline import extract_entry
from ereader_updater.services.transform import IdentityTransform, StreamTransform
from ereader_updater.utils.verification import compute_sha256

GZIP_MAGIC = b"\x1f\x8b"


class OverlayService:
    """Unpacks the overlay tarball from the update onto the live root filesystem.

    The overlay is normally stored in the archive as a plain gzip tarball and
    is applied as stored. An overlay stored under a second layer of
    compression is run through the update's decompressor first.
    """

    def __init__(
        self,
        archive: UpdateArchive,
        decompressor: StreamTransform,
        config: UpdaterConfig,
    ):
        self.logger = logging.getLogger("ereader_updater.overlay")
        self.archive = archive
        self.decompressor = decompressor
        self.config = config

    async def apply(self) -> bool:
        """Extract, test and apply the overlay if the update carries one.

        Returns:
            True if the overlay was applied, False if there was nothing to do

        Raises:
            OverlayError: If the overlay is present but corrupt or unsafe, or
                the live root cannot be updated
        """
        scratch = self.config.scratch_dir / OVERLAY_ENTRY
        try:
            if not self.archive.has_entry(OVERLAY_ENTRY):
                self.logger.info(f"No {OVERLAY_ENTRY} in update, nothing to apply")
                return False

            self.logger.info(f"Extracting {OVERLAY_ENTRY}")
            await self._extract(scratch)

            try:
                digest = compute_sha256(scratch)
            except OSError as e:
                raise OverlayError(f"cannot hash {scratch}: {e}") from e
            if self._already_applied(digest):
                self.logger.info(
                    f"{OVERLAY_ENTRY} {digest[:12]} already applied, skipping"
                )
                return False

            self.test_integrity(scratch)
            self._unpack(scratch)
            self._append_install_log()
            self._record_applied(digest)
            return True
        finally:
            scratch.unlink(missing_ok=True)

    async def _extract(self, scratch: Path) -> None:
        try:
            await extract_entry(
                self.archive,
                OVERLAY_ENTRY,
                IdentityTransform(),
                scratch,
                self.config.block_size,
            )
            if _is_gzip(scratch):
                return

            self.logger.info(f"{OVERLAY_ENTRY} is not stored as gzip, decompressing")
            await extract_entry(
                self.archive,
                OVERLAY_ENTRY,
                self.decompressor,
                scratch,
                self.config.block_size,
            )
        except (ArchiveError, DecompressionError) as e:
            raise OverlayError(f"Extraction of {OVERLAY_ENTRY} failed: {e.detail}") from e
        except OSError as e:
            raise OverlayError(f"Extraction of {OVERLAY_ENTRY} failed: {e}") from e

    def test_integrity(self, path: Path) -> None:
        """Equivalent of ``gunzip -t`` plus a tar listing and path safety check.

        Raises:
            OverlayError: On any compression, tar or path problem
        """
        try:
            with gzip.open(path, "rb") as gz:
                while gz.read(self.config.read_chunk_size):
                    pass
            with tarfile.open(path, "r:gz") as tar:
                members = tar.getmembers()
        except (OSError, EOFError, zlib.error, tarfile.TarError) as e:
            raise OverlayError(f"{OVERLAY_ENTRY} failed integrity test: {e}") from e

        for member in members:
            name = PurePosixPath(member.name)
            if name.is_absolute() or ".." in name.parts:
                raise OverlayError(f"{OVERLAY_ENTRY} contains unsafe path {member.name}")
        self.logger.info(f"{OVERLAY_ENTRY} integrity OK ({len(members)} members)")

    def _unpack(self, path: Path) -> None:
        root = self.config.live_root
        self.logger.info(f"Applying {OVERLAY_ENTRY} onto {root}")
        # Member paths were checked by test_integrity; modes (setuid, sticky)
        # must land on the root filesystem exactly as shipped.
        try:
            with tarfile.open(path, "r:gz") as tar:
                tar.extractall(path=root, filter="fully_trusted")
        except (OSError, tarfile.TarError) as e:
            raise OverlayError(f"applying {OVERLAY_ENTRY} failed: {e}") from e

    def _append_install_log(self) -> None:
        revinfo = self.config.revinfo_file
        if not revinfo.is_file():
            self.logger.warning(f"{revinfo} missing, install log not updated")
            return
        log_path = self.config.install_log
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(log_path, "a", encoding="utf-8") as log:
                log.write(revinfo.read_text(encoding="utf-8", errors="replace"))
        except OSError as e:
            raise OverlayError(f"cannot append {revinfo} to {log_path}: {e}") from e
        self.logger.info(f"Appended {revinfo} to {log_path}")

    def _already_applied(self, digest: str) -> bool:
        marker = self.config.overlay_marker
        if not marker.is_file():
            return False
        try:
            return marker.read_text(encoding="utf-8").strip() == digest
        except OSError as e:
            self.logger.warning(f"Cannot read {marker} ({e}), applying overlay")
            return False

    def _record_applied(self, digest: str) -> None:
        marker = self.config.overlay_marker
        tmp_path = marker.parent / f"{marker.name}.tmp"
        try:
            marker.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(f"{digest}\n", encoding="utf-8")
            tmp_path.replace(marker)
        except OSError as e:
            raise OverlayError(f"cannot record applied overlay in {marker}: {e}") from e


def _is_gzip(path: Path) -> bool:
    with open(path, "rb") as f:
        return f.read(len(GZIP_MAGIC)) == GZIP_MAGIC
