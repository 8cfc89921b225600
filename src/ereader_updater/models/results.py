"""Tagged result of a flash attempt."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class FlashStatus(str, Enum):
    FLASHED = "flashed"
    SKIPPED_ABSENT = "skipped_absent"
    FAILED_FATAL = "failed_fatal"


class FlashResult(BaseModel):
    """Outcome of writing one archive entry to one partition.

    A missing entry is a soft outcome (SKIPPED_ABSENT). Everything else that
    goes wrong is FAILED_FATAL and carries a reason.
    """

    status: FlashStatus
    entry: str
    partition: str
    bytes_written: int = Field(default=0, ge=0)
    reason: Optional[str] = None

    @model_validator(mode="after")
    def reason_only_when_failed(self) -> "FlashResult":
        if self.status == FlashStatus.FAILED_FATAL and not self.reason:
            raise ValueError("A fatal flash result needs a reason")
        if self.status != FlashStatus.FAILED_FATAL and self.reason is not None:
            raise ValueError("Only fatal flash results carry a reason")
        return self

    @classmethod
    def flashed(cls, entry: str, partition: str, bytes_written: int) -> "FlashResult":
        return cls(
            status=FlashStatus.FLASHED,
            entry=entry,
            partition=partition,
            bytes_written=bytes_written,
        )

    @classmethod
    def skipped_absent(cls, entry: str, partition: str) -> "FlashResult":
        return cls(status=FlashStatus.SKIPPED_ABSENT, entry=entry, partition=partition)

    @classmethod
    def failed_fatal(cls, entry: str, partition: str, reason: str) -> "FlashResult":
        return cls(
            status=FlashStatus.FAILED_FATAL,
            entry=entry,
            partition=partition,
            reason=reason,
        )

    @property
    def is_fatal(self) -> bool:
        return self.status == FlashStatus.FAILED_FATAL
