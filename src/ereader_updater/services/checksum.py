"""Checksum gate run before any stage touches the device."""

import logging
from pathlib import Path
from typing import Optional

from ereader_updater.config import MANIFEST_ENTRY
from ereader_updater.errors import (
    ArchiveError,
    ChecksumMismatchError,
    DecompressionError,
    ManifestError,
    ManifestMissingError,
)
from ereader_updater.models.manifest import ChecksumManifest
from ereader_updater.services.archive import UpdateArchive
from ereader_updater.services.pipeline import extract_entry
from ereader_updater.services.transform import StreamTransform
from ereader_updater.utils.verification import (
    HashVerifier,
    Sha256Verifier,
    digests_match,
)


class ChecksumVerifier:
    """Verifies every file listed in ``sha2-256sums`` against the archive.

    Hashes cover the bytes as stored in the archive, before decompression.
    The manifest itself is stored compressed and goes through the
    decompressor.
    """

    def __init__(
        self,
        archive: UpdateArchive,
        decompressor: StreamTransform,
        scratch_dir: Path,
        hasher: Optional[HashVerifier] = None,
    ):
        self.logger = logging.getLogger("ereader_updater.checksum")
        self.archive = archive
        self.decompressor = decompressor
        self.scratch_dir = Path(scratch_dir)
        self.hasher = hasher or Sha256Verifier()

    async def load_manifest(self) -> ChecksumManifest:
        """Extract and parse the manifest; the scratch copy never outlives this call.

        Raises:
            ManifestMissingError: If the manifest is absent or cannot be extracted
            ManifestError: If the manifest is malformed or empty
        """
        scratch = self.scratch_dir / MANIFEST_ENTRY
        try:
            if not self.archive.has_entry(MANIFEST_ENTRY):
                raise ManifestMissingError(
                    "Extracting checksum file failed. Missing or corrupted?"
                )
            try:
                await extract_entry(
                    self.archive, MANIFEST_ENTRY, self.decompressor, scratch
                )
                text = scratch.read_text(encoding="utf-8")
            except (ArchiveError, DecompressionError, OSError, UnicodeDecodeError) as e:
                raise ManifestMissingError(
                    f"Extracting checksum file failed. Missing or corrupted? ({e})"
                ) from e

            manifest = ChecksumManifest.parse(text)
            if not manifest.entries:
                raise ManifestError("checksum manifest lists no files")
            return manifest
        finally:
            scratch.unlink(missing_ok=True)

    async def verify(self) -> ChecksumManifest:
        """Check every manifest entry, stopping at the first mismatch.

        Returns:
            The verified manifest

        Raises:
            ManifestMissingError: If the manifest is absent
            ManifestError: If the manifest is malformed
            ChecksumMismatchError: On the first entry whose hash differs
        """
        self.logger.info("Checking update checksums")
        manifest = await self.load_manifest()

        for entry in manifest.entries:
            self.logger.info(f"{entry.name} ?= {entry.digest}")
            if not self.archive.has_entry(entry.name):
                self.logger.error(f"Checksum failed: {entry.name} (not in archive)")
                raise ChecksumMismatchError(entry.name, entry.digest, None)

            # Re-read from the archive for every entry; nothing is cached.
            actual = await self.hasher.digest(self.archive.iter_entry(entry.name))
            if not digests_match(entry.digest, actual):
                self.logger.error(f"Checksum failed: {entry.name}")
                raise ChecksumMismatchError(entry.name, entry.digest, actual)

        self.logger.info("Checksums OK")
        return manifest
