"""Exception hierarchy for the updater.

Every fatal condition raised by a service derives from UpdaterError. The
orchestrator is the only place that turns these into a process exit code.
Messages start with a stable uppercase code so log lines can be grepped.
"""

from typing import Optional


class UpdaterError(Exception):
    """Base class for all fatal updater conditions."""

    code = "UPDATER_ERROR"

    def __init__(self, message: str):
        super().__init__(f"{self.code}: {message}")
        self.detail = message


class InvalidUsageError(UpdaterError):
    code = "INVALID_USAGE"


class UnsupportedProductError(UpdaterError):
    code = "UNSUPPORTED_PRODUCT"

    def __init__(self, product: str):
        super().__init__(f"Device not supported: {product}")
        self.product = product


class ArchiveError(UpdaterError):
    """The update archive itself cannot be opened or read."""

    code = "ARCHIVE_UNREADABLE"


class EntryNotFoundError(UpdaterError):
    code = "ENTRY_NOT_FOUND"

    def __init__(self, name: str):
        super().__init__(f"{name} not found in archive")
        self.name = name


class DecompressorError(UpdaterError):
    """The decompressor could not be staged from the archive."""

    code = "DECOMPRESSOR_UNAVAILABLE"


class DecompressionError(UpdaterError):
    """The decompressor ran but rejected its input."""

    code = "DECOMPRESSION_FAILED"


class ManifestMissingError(UpdaterError):
    code = "MANIFEST_MISSING"


class ManifestError(UpdaterError):
    code = "MANIFEST_INVALID"


class ChecksumMismatchError(UpdaterError):
    code = "CHECKSUM_MISMATCH"

    def __init__(self, name: str, expected: str, actual: Optional[str]):
        got = actual if actual is not None else "<missing>"
        super().__init__(f"{name}: expected {expected}, got {got}")
        self.name = name
        self.expected = expected
        self.actual = actual


class PartitionError(UpdaterError):
    code = "PARTITION_MISSING"


class FlashError(UpdaterError):
    code = "FLASH_FAILED"


class HwConfigError(UpdaterError):
    code = "HWCONFIG_FAILED"


class OverlayError(UpdaterError):
    code = "OVERLAY_INVALID"


class PackError(UpdaterError):
    code = "PACK_FAILED"


class HookError(UpdaterError):
    code = "UPDATE_SCRIPT_FAILED"


class CommandError(UpdaterError):
    """An external helper program failed."""

    code = "COMMAND_FAILED"

    def __init__(self, argv: list[str], returncode: Optional[int], stderr: str = ""):
        status = f"exit code {returncode}" if returncode is not None else "not started"
        message = f"{' '.join(argv)}: {status}"
        if stderr:
            message += f", stderr: {stderr.strip()}"
        super().__init__(message)
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
