"""Dispatch outcome values.

An outcome is recorded once per message id and never changes.  Replaying a
recorded outcome for a duplicate submission yields an equal value flagged
with ``duplicate=True``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class OutcomeStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of a submission.

    Attributes:
        status:    SENT, FAILED or RATE_LIMITED.  Replays keep the recorded
                   status and set ``duplicate``.
        provider:  Name of the provider that delivered the message (SENT only).
        attempts:  Delivery attempts made across all providers for this
                   message.  Skipped providers do not count.
        duplicate: True when this value is a replay of an outcome that was
                   already in the ledger.  Ignored by equality.
    """

    status: OutcomeStatus
    provider: Optional[str] = None
    attempts: int = 0
    duplicate: bool = field(default=False, compare=False)

    @classmethod
    def sent(cls, provider: str, attempts: int) -> "DispatchOutcome":
        return cls(OutcomeStatus.SENT, provider=provider, attempts=attempts)

    @classmethod
    def failed(cls, attempts: int) -> "DispatchOutcome":
        return cls(OutcomeStatus.FAILED, attempts=attempts)

    @classmethod
    def rate_limited(cls) -> "DispatchOutcome":
        return cls(OutcomeStatus.RATE_LIMITED)

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SENT

    def as_duplicate(self) -> "DispatchOutcome":
        """Return this recorded outcome flagged as a duplicate replay."""
        return dataclasses.replace(self, duplicate=True)

    def to_dict(self) -> dict[str, Any]:
        """Wire shape: ``{"status", "provider", "attempts"}``."""
        if self.duplicate:
            return {
                "status": OutcomeStatus.DUPLICATE.value,
                "original_status": self.status.value,
                "provider": self.provider,
                "attempts": self.attempts,
            }
        if self.status is OutcomeStatus.RATE_LIMITED:
            return {"status": self.status.value}
        return {
            "status": self.status.value,
            "provider": self.provider,
            "attempts": self.attempts,
        }
