"""Retry / fallback dispatcher.

Tries a message against each provider in priority order.  Every provider
is guarded by its own circuit breaker and gets ``max_retries + 1`` attempts
with exponential backoff between them:

    delay before attempt k (k >= 2) = base_delay * 2 ** (k - 2)

The breaker is checked once when moving to a provider, never between
retries of the same provider.  A provider whose breaker is open is skipped
without counting an attempt.  The first successful attempt produces
``Sent``; if every provider is skipped or exhausted the result is
``Failed`` with the total attempts made.

Per-attempt errors never escape: they become breaker and retry
bookkeeping.  The final outcome is written to the idempotency ledger
exactly once (first writer wins).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from maildispatch.models import Message
from maildispatch.outcome import DispatchOutcome
from maildispatch.observability.metrics import MetricsCollector
from maildispatch.providers.base import BaseProvider
from maildispatch.utils.circuit_breaker import CircuitBreaker
from maildispatch.utils.idempotency import IdempotencyLedger

logger = logging.getLogger(__name__)


@dataclass
class ProviderEntry:
    """A provider paired with the breaker that guards it.

    Attributes:
        provider: Delivery capability.
        breaker:  Breaker owned by this entry alone.
    """

    provider: BaseProvider
    breaker: CircuitBreaker

    @property
    def name(self) -> str:
        return self.provider.name


class Dispatcher:
    """Delivers one message at a time through the provider chain.

    Args:
        entries:     Providers with their breakers, in priority order.
        ledger:      Idempotency ledger shared with the submission path.
        max_retries: Retries per provider after the first attempt.
        base_delay:  Backoff base in seconds.
        sleep:       Awaitable delay function; tests inject a recorder.
        metrics:     Optional Prometheus collector.
    """

    def __init__(
        self,
        entries: Sequence[ProviderEntry],
        ledger: IdempotencyLedger,
        max_retries: int = 2,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {base_delay}")
        self._entries: tuple[ProviderEntry, ...] = tuple(entries)
        self._ledger = ledger
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._sleep = sleep
        self._metrics = metrics

    @property
    def entries(self) -> tuple[ProviderEntry, ...]:
        return self._entries

    def backoff_delay(self, attempt: int) -> float:
        """Delay before 1-based *attempt* on the same provider."""
        if attempt < 2:
            return 0.0
        return self._base_delay * (2 ** (attempt - 2))

    def breakers(self) -> list[dict]:
        """Return breaker snapshots for health output."""
        return [entry.breaker.snapshot() for entry in self._entries]

    async def dispatch(self, message: Message) -> DispatchOutcome:
        """Dispatch *message* and return its recorded outcome.

        An id that is already in the ledger is answered from it without
        contacting any provider.
        """
        prior = self._ledger.lookup(message.id)
        if prior is not None:
            logger.info("Duplicate email id=%s answered from ledger", message.id)
            return prior.as_duplicate()

        start = time.monotonic()
        attempts_used = 0
        outcome: DispatchOutcome | None = None

        for entry in self._entries:
            if not entry.breaker.should_allow():
                logger.info(
                    "[%s] Circuit open, skipping for email id=%s (%.1fs remaining)",
                    entry.name,
                    message.id,
                    entry.breaker.remaining_cooldown(),
                )
                self._count_attempt(entry, "skipped")
                continue

            used, delivered = await self._try_provider(entry, message)
            attempts_used += used
            if delivered:
                outcome = DispatchOutcome.sent(entry.name, attempts_used)
                break

        if outcome is None:
            outcome = DispatchOutcome.failed(attempts_used)

        if not self._ledger.record_if_absent(message.id, outcome):
            recorded = self._ledger.lookup(message.id)
            logger.warning(
                "Outcome for email id=%s was already recorded; discarding %s",
                message.id,
                outcome.status.value,
            )
            return recorded.as_duplicate()

        if self._metrics is not None:
            self._metrics.outcomes.labels(status=outcome.status.value).inc()
            self._metrics.dispatch_latency.observe(time.monotonic() - start)

        logger.info(
            "Email id=%s %s (provider=%s, attempts=%d)",
            message.id,
            outcome.status.value,
            outcome.provider,
            outcome.attempts,
        )
        return outcome

    # -- per-provider retry loop ---------------------------------------------

    async def _try_provider(
        self,
        entry: ProviderEntry,
        message: Message,
    ) -> tuple[int, bool]:
        """Attempt delivery on one provider.

        Returns ``(attempts_made, delivered)``.
        """
        attempts = self._max_retries + 1

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await self._retry_delay(entry.name, message.id, attempt, attempts)
            try:
                await entry.provider.send(message)
            except Exception as exc:
                entry.breaker.record_failure(exc)
                self._count_attempt(entry, "failure")
                logger.warning(
                    "[%s] Attempt %d/%d failed for email id=%s: %s",
                    entry.name,
                    attempt,
                    attempts,
                    message.id,
                    exc,
                )
                continue

            entry.breaker.record_success()
            self._count_attempt(entry, "success")
            return attempt, True

        return attempts, False

    async def _retry_delay(
        self,
        provider_name: str,
        message_id: str,
        attempt: int,
        attempts: int,
    ) -> None:
        """Sleep for the exponential backoff before *attempt*."""
        delay = self.backoff_delay(attempt)
        logger.debug(
            "[%s] Retrying email id=%s in %.2fs (attempt %d/%d)",
            provider_name,
            message_id,
            delay,
            attempt,
            attempts,
        )
        await self._sleep(delay)

    def _count_attempt(self, entry: ProviderEntry, result: str) -> None:
        if self._metrics is None:
            return
        self._metrics.provider_attempts.labels(provider=entry.name, result=result).inc()
        self._metrics.circuit_breaker_state.labels(provider=entry.name).set(
            1 if entry.breaker.is_open else 0
        )
