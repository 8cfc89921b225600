"""Stage and phase enums for the updater."""

from enum import Enum


class Stage(str, Enum):
    """Action set selected on the command line.

    stage1: running from the primary root filesystem
    stage2: running from the recovery filesystem
    pack:   build an update archive instead of applying one
    """

    STAGE1 = "stage1"
    STAGE2 = "stage2"
    PACK = "pack"


class UpdatePhase(str, Enum):
    """Orchestrator lifecycle.

    State transitions:
    start → product_resolved → decompressor_staged → checksum_verified → dispatched → done
      ↓             ↓                   ↓                    ↓                ↓
    aborted ←──────────────────────────────────────────────────────────────────
    """

    START = "start"
    PRODUCT_RESOLVED = "product_resolved"
    DECOMPRESSOR_STAGED = "decompressor_staged"
    CHECKSUM_VERIFIED = "checksum_verified"
    DISPATCHED = "dispatched"
    DONE = "done"
    ABORTED = "aborted"
