"""
maildispatch -- Dispatch core.

Owns every piece of mutable state the service has: provider breakers, the
rate windows, the idempotency ledger and the dispatch queue.  One core is
built at startup, started, and stopped at shutdown.

Usage::

    core = DispatchCore.from_settings(get_settings())
    async with core:
        outcome = await core.send(message, client_key="10.0.0.7")
        core.status(message.id)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

from maildispatch.config.settings import DispatchSettings
from maildispatch.dispatch.dispatcher import Dispatcher, ProviderEntry
from maildispatch.dispatch.queue import DispatchQueue
from maildispatch.models import Message
from maildispatch.observability.metrics import MetricsCollector
from maildispatch.outcome import DispatchOutcome
from maildispatch.providers import BaseProvider, build_providers
from maildispatch.utils.circuit_breaker import CircuitBreaker
from maildispatch.utils.idempotency import IdempotencyLedger
from maildispatch.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class DispatchCore:
    """Single owner of the dispatch pipeline.

    Args:
        providers: Delivery providers in priority order.
        max_retries: Retries per provider after the first attempt.
        retry_base_delay: Backoff base in seconds.
        breaker_threshold: Consecutive failures that open a breaker.
        breaker_cooldown: Seconds a breaker stays open.
        rate_limit: Admissions per client key per window.
        rate_window: Rate window length in seconds.
        metrics: Optional Prometheus collector.
        clock: Monotonic time source for breakers and rate windows.
        sleep: Backoff sleep function.
        shutdown_grace_seconds: Grace period for the in-flight message on stop.
    """

    def __init__(
        self,
        providers: Sequence[BaseProvider],
        *,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
        breaker_threshold: int = 3,
        breaker_cooldown: float = 10.0,
        rate_limit: int = 5,
        rate_window: float = 60.0,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        shutdown_grace_seconds: float = 30.0,
    ) -> None:
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"provider names must be unique, got {names}")

        self.metrics = metrics
        self.ledger = IdempotencyLedger()
        self.rate_limiter = SlidingWindowRateLimiter(
            limit=rate_limit,
            window_seconds=rate_window,
            clock=clock,
        )
        self.entries: list[ProviderEntry] = [
            ProviderEntry(
                provider=provider,
                breaker=CircuitBreaker(
                    provider.name,
                    threshold=breaker_threshold,
                    cooldown=breaker_cooldown,
                    clock=clock,
                ),
            )
            for provider in providers
        ]
        self.dispatcher = Dispatcher(
            self.entries,
            self.ledger,
            max_retries=max_retries,
            base_delay=retry_base_delay,
            sleep=sleep,
            metrics=metrics,
        )
        self.queue = DispatchQueue(
            self.dispatcher,
            self.rate_limiter,
            self.ledger,
            metrics=metrics,
            shutdown_grace_seconds=shutdown_grace_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: DispatchSettings,
        providers: Optional[Sequence[BaseProvider]] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> DispatchCore:
        """Build a core from configuration.

        *providers* overrides the chain built from ``provider_names``.
        """
        if providers is None:
            providers = build_providers(settings)
        return cls(
            providers,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay_seconds,
            breaker_threshold=settings.circuit_breaker_threshold,
            breaker_cooldown=settings.circuit_breaker_cooldown_seconds,
            rate_limit=settings.rate_limit_max,
            rate_window=settings.rate_limit_window_seconds,
            metrics=metrics,
            shutdown_grace_seconds=settings.shutdown_grace_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        logger.info(
            "DispatchCore starting with providers %s",
            [entry.name for entry in self.entries],
        )
        await self.queue.start()

    async def stop(self) -> None:
        await self.queue.stop()
        for entry in self.entries:
            await entry.provider.close()
        logger.info("DispatchCore stopped")

    async def __aenter__(self) -> DispatchCore:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.stop()
        return False

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit(self, message: Message, client_key: str = "default") -> asyncio.Future:
        """Admit *message*; see :meth:`DispatchQueue.submit`."""
        return await self.queue.submit(message, client_key)

    async def send(self, message: Message, client_key: str = "default") -> DispatchOutcome:
        """Submit *message* and wait for its outcome."""
        future = await self.submit(message, client_key)
        return await future

    def status(self, message_id: str) -> Optional[DispatchOutcome]:
        """Recorded outcome for *message_id*, or None if unknown."""
        return self.ledger.lookup(message_id)

    def health(self) -> dict[str, Any]:
        return {
            "running": self.queue.running,
            "queue_depth": self.queue.depth,
            "queue_stats": dict(self.queue.stats),
            "ledger_size": len(self.ledger),
            "rate_limited_keys": self.rate_limiter.tracked_keys,
            "providers": [
                {**entry.breaker.snapshot(), **entry.provider.get_stats()}
                for entry in self.entries
            ],
        }
