"""
maildispatch -- In-memory idempotency ledger.

Maps a message id to the outcome of its one and only dispatch:

* ``lookup``            -- the recorded outcome, or ``None``.
* ``record_if_absent``  -- first writer wins; later writers are refused.

Every method runs to completion on the event loop without suspending, so a
check-and-set for one id can never interleave with another caller's.

Entries live for the lifetime of the process.  There is no eviction:
deployments that need bounded memory must expire ids externally.
"""

from __future__ import annotations

import logging
from typing import Iterator

from maildispatch.outcome import DispatchOutcome

logger = logging.getLogger(__name__)


class IdempotencyLedger:
    """Append-once record of dispatch outcomes keyed by message id."""

    def __init__(self) -> None:
        self._entries: dict[str, DispatchOutcome] = {}

    def lookup(self, message_id: str) -> DispatchOutcome | None:
        """Return the recorded outcome for *message_id*, if any."""
        return self._entries.get(message_id)

    def record_if_absent(self, message_id: str, outcome: DispatchOutcome) -> bool:
        """Record *outcome* unless *message_id* already has one.

        Returns True if this call established the entry.  An existing
        entry is never overwritten.
        """
        if not message_id:
            raise ValueError("message_id must be non-empty")
        existing = self._entries.get(message_id)
        if existing is not None:
            logger.debug(
                "ledger.record_refused",
                extra={"message_id": message_id, "recorded": existing.status.value},
            )
            return False
        self._entries[message_id] = outcome
        return True

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
