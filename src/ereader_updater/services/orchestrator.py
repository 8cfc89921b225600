"""Top-level stage orchestration for an update run."""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from ereader_updater.config import (
    DECOMPRESSOR_ENTRY,
    ROOTFS_IMAGE,
    STOCK_ROOTFS_MARKER,
    UPDATE_SCRIPT_ENTRY,
    VENDOR_IMAGE,
    UpdaterConfig,
)
from ereader_updater.errors import (
    ArchiveError,
    CommandError,
    DecompressionError,
    DecompressorError,
    EntryNotFoundError,
    HookError,
    UpdaterError,
)
from ereader_updater.models.device import DeviceProfile, resolve_device_profile
from ereader_updater.models.results import FlashStatus
from ereader_updater.models.status import Stage, UpdatePhase
from ereader_updater.services.archive import UpdateArchive
from ereader_updater.services.boot import (
    BootPartitionSelector,
    HwConfigStore,
    NtxHwConfigStore,
)
from ereader_updater.services.checksum import ChecksumVerifier
from ereader_updater.services.flash import ImageFlasher
from ereader_updater.services.overlay import OverlayService
from ereader_updater.services.pack import PackService
from ereader_updater.services.partitions import ByLabelResolver, PartitionResolver
from ereader_updater.services.pipeline import extract_entry
from ereader_updater.services.process import ProcessRunner
from ereader_updater.services.transform import CommandTransform, StreamTransform
from ereader_updater.utils.verification import HashVerifier

EXIT_OK = 0
EXIT_FAILURE = 1

# stage1 never reports success: a zero exit would make the OS reboot into the
# recovery filesystem for stage2, which an overlay-only update does not need.
STAGE1_EXIT_CODE = EXIT_FAILURE


class StageOrchestrator:
    """Runs one invocation of the updater from product resolution to sync.

    Phases advance in order (see UpdatePhase); any UpdaterError moves the run
    to ABORTED and yields exit code 1. Nothing is retried here, the next boot
    re-invokes the updater instead.
    """

    def __init__(
        self,
        config: Optional[UpdaterConfig] = None,
        resolver: Optional[PartitionResolver] = None,
        hwconfig_store: Optional[HwConfigStore] = None,
        runner: Optional[ProcessRunner] = None,
        decompressor_factory: Optional[Callable[[Path], StreamTransform]] = None,
        compressor: Optional[StreamTransform] = None,
        hasher: Optional[HashVerifier] = None,
        work_dir: Optional[Path] = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Paths and switches (defaults to UpdaterConfig())
            resolver: Partition label resolver (defaults to by-partlabel links)
            hwconfig_store: Boot config store (defaults to ntx_hwconfig)
            runner: Subprocess runner for helper programs
            decompressor_factory: Builds a transform from the staged decompressor
            compressor: Transform used by pack mode
            hasher: Content hash used by the checksum gate
            work_dir: Directory pack mode reads its inputs from (defaults to cwd)
        """
        self.logger = logging.getLogger("ereader_updater.orchestrator")
        self.config = config or UpdaterConfig()
        self.resolver = resolver or ByLabelResolver(self.config.partlabel_dir)
        self.runner = runner or ProcessRunner()
        self.hwconfig_store = hwconfig_store or NtxHwConfigStore(
            self.resolver.device_path(self.config.hwconfig_label),
            tool=self.config.hwconfig_tool,
            runner=self.runner,
        )
        self.decompressor_factory = decompressor_factory or (
            lambda path: CommandTransform([str(path)], self.config.read_chunk_size)
        )
        self.compressor = compressor or CommandTransform(
            self.config.compressor_argv, self.config.read_chunk_size
        )
        self.hasher = hasher
        self.work_dir = Path(work_dir) if work_dir is not None else Path.cwd()
        self.phase = UpdatePhase.START

    def _advance(self, phase: UpdatePhase) -> None:
        self.logger.debug(f"Phase {self.phase.value} -> {phase.value}")
        self.phase = phase

    async def run(self, archive_path: Path, stage: Stage, product: str) -> int:
        """Execute one updater invocation.

        Args:
            archive_path: Update archive to apply (or to create, for pack)
            stage: Stage selected on the command line
            product: Product identifier

        Returns:
            Process exit code
        """
        self.phase = UpdatePhase.START
        try:
            profile = resolve_device_profile(product)
            self._advance(UpdatePhase.PRODUCT_RESOLVED)
            self.logger.info(
                f"Product {profile.product} (device {profile.family}), "
                f"stage {stage.value}, archive {archive_path}"
            )

            if stage == Stage.PACK:
                exit_code = await self._run_pack(Path(archive_path))
            else:
                exit_code = await self._run_update(Path(archive_path), stage, profile)
        except UpdaterError as e:
            self.logger.error(f"Update aborted: {e}")
            self._advance(UpdatePhase.ABORTED)
            return EXIT_FAILURE
        except OSError as e:
            self.logger.exception(f"Update aborted: I/O error: {e}")
            self._advance(UpdatePhase.ABORTED)
            return EXIT_FAILURE

        self._advance(UpdatePhase.DONE)
        return exit_code

    async def _run_update(
        self, archive_path: Path, stage: Stage, profile: DeviceProfile
    ) -> int:
        archive = UpdateArchive(archive_path, self.config.read_chunk_size)

        decompressor = self.stage_decompressor(archive)
        self._advance(UpdatePhase.DECOMPRESSOR_STAGED)

        verifier = ChecksumVerifier(
            archive, decompressor, self.config.scratch_dir, self.hasher
        )
        await verifier.verify()
        self._advance(UpdatePhase.CHECKSUM_VERIFIED)

        script = await self._prepare_update_script(archive, decompressor)
        try:
            if script is not None:
                await self._run_update_script(script, archive_path, stage, "pre")

            if stage == Stage.STAGE1:
                exit_code = await self.run_stage1(archive, decompressor)
            else:
                exit_code = await self.run_stage2(archive, decompressor)
            self._advance(UpdatePhase.DISPATCHED)
        finally:
            self._sync()

        if script is not None:
            await self._run_update_script(script, archive_path, stage, "post")
        return exit_code

    async def _run_pack(self, archive_path: Path) -> int:
        # Pack creates the archive, so there is nothing to stage or verify yet.
        service = PackService(self.work_dir, self.compressor)
        try:
            await service.pack(archive_path)
            self._advance(UpdatePhase.DISPATCHED)
        finally:
            self._sync()
        return EXIT_OK

    def stage_decompressor(self, archive: UpdateArchive) -> StreamTransform:
        """Extract the decompressor to scratch space and check it can run.

        Raises:
            DecompressorError: If it is missing, unreadable or not executable
        """
        target = self.config.decompressor_path
        try:
            self.config.scratch_dir.mkdir(parents=True, exist_ok=True)
            archive.extract_to(DECOMPRESSOR_ENTRY, target)
        except (EntryNotFoundError, ArchiveError, OSError) as e:
            raise DecompressorError(f"cannot stage {DECOMPRESSOR_ENTRY}: {e}") from e

        if not os.access(target, os.X_OK):
            raise DecompressorError(f"{target} is not executable")
        self.logger.info(f"Staged decompressor at {target}")
        return self.decompressor_factory(target)

    async def run_stage1(
        self, archive: UpdateArchive, decompressor: StreamTransform
    ) -> int:
        """Apply the in-place overlay, then report failure on purpose."""
        overlay = OverlayService(archive, decompressor, self.config)
        applied = await overlay.apply()
        self.logger.info(
            f"stage1 finished (overlay {'applied' if applied else 'not applied'}); "
            f"exiting with {STAGE1_EXIT_CODE} to skip the recovery stage"
        )
        return STAGE1_EXIT_CODE

    async def run_stage2(
        self, archive: UpdateArchive, decompressor: StreamTransform
    ) -> int:
        """Flash rootfs and vendor, then arm the root partition for next boot.

        The boot partition switch is the last action so an interrupted flash
        never becomes the boot target.
        """
        flasher = ImageFlasher(
            archive, decompressor, self.resolver, self.config.block_size
        )

        if self.config.flash_rootfs:
            await self._flash_rootfs(archive, flasher)
        else:
            self.logger.info(f"{ROOTFS_IMAGE} flashing disabled")

        if self.config.flash_vendor:
            await flasher.flash_image(VENDOR_IMAGE, "vendor")
        else:
            self.logger.info(f"{VENDOR_IMAGE} flashing disabled")

        selector = BootPartitionSelector(self.resolver, self.hwconfig_store)
        await selector.set_boot_partition("root")
        return EXIT_OK

    async def _flash_rootfs(self, archive: UpdateArchive, flasher: ImageFlasher) -> None:
        # The rootfs ships in the update unless the recovery was updated too,
        # in which case the recovery carries it and the update has a marker.
        result = await flasher.flash_image(ROOTFS_IMAGE, "system_a")
        if result.status != FlashStatus.SKIPPED_ABSENT:
            return

        if archive.has_entry(STOCK_ROOTFS_MARKER):
            self.logger.info("Flashing stock rootfs")
            await flasher.flash_file(self.config.recovery_rootfs, "system_a")
        else:
            self.logger.info("Not flashing any rootfs.")

    async def _prepare_update_script(
        self, archive: UpdateArchive, decompressor: StreamTransform
    ) -> Optional[Path]:
        if not self.config.run_update_script:
            return None
        if not archive.has_entry(UPDATE_SCRIPT_ENTRY):
            self.logger.debug(f"No {UPDATE_SCRIPT_ENTRY} in update")
            return None

        script = self.config.scratch_dir / UPDATE_SCRIPT_ENTRY
        try:
            await extract_entry(archive, UPDATE_SCRIPT_ENTRY, decompressor, script)
        except (ArchiveError, DecompressionError) as e:
            raise HookError(f"Extraction of {UPDATE_SCRIPT_ENTRY} failed: {e.detail}") from e
        try:
            script.chmod(0o755)
        except OSError as e:
            raise HookError(f"cannot make {script} executable: {e}") from e
        return script

    async def _run_update_script(
        self, script: Path, archive_path: Path, stage: Stage, when: str
    ) -> None:
        self.logger.info(f"Running {UPDATE_SCRIPT_ENTRY} ({when})")
        try:
            await self.runner.run([str(script), str(archive_path), stage.value, when])
        except CommandError as e:
            raise HookError(e.detail) from e

    def _sync(self) -> None:
        self.logger.info("Syncing filesystems")
        os.sync()
