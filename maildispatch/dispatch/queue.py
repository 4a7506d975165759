"""
maildispatch -- Single-consumer dispatch queue.

Decouples admission (fast) from delivery (slow, variable).  ``submit()``
runs on the caller's task and performs, in order:

    1. Rate-limit check   -- over limit: resolved ``RateLimited``, never queued.
    2. Ledger lookup      -- known id: resolved with the recorded outcome.
    3. Enqueue            -- a future is returned for the eventual outcome.

One consumer task drains the queue strictly FIFO and runs each message
through the :class:`~maildispatch.dispatch.dispatcher.Dispatcher` to
completion before taking the next, so delivery attempts for different
messages never interleave and breaker state has a single writer.

A caller that stops waiting on its future does not stop the dispatch; the
outcome is still recorded for later duplicates.

The queue is unbounded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from maildispatch.dispatch.dispatcher import Dispatcher
from maildispatch.models import Message
from maildispatch.outcome import DispatchOutcome
from maildispatch.observability.metrics import MetricsCollector
from maildispatch.utils.idempotency import IdempotencyLedger
from maildispatch.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class QueueItem:
    """A queued message and the future its submitter awaits."""

    message: Message
    future: asyncio.Future
    client_key: str = "default"
    enqueued_at: float = field(default_factory=time.monotonic)


class DispatchQueue:
    """FIFO work queue drained by a single dispatch consumer.

    Args:
        dispatcher: Dispatcher that delivers each message.
        rate_limiter: Per-client admission control.
        ledger: Idempotency ledger shared with the dispatcher.
        metrics: Optional Prometheus collector.
        shutdown_grace_seconds: How long :meth:`stop` waits for the
            in-flight message before cancelling the consumer.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        rate_limiter: SlidingWindowRateLimiter,
        ledger: IdempotencyLedger,
        metrics: Optional[MetricsCollector] = None,
        shutdown_grace_seconds: float = 30.0,
    ) -> None:
        self._dispatcher: Dispatcher = dispatcher
        self._rate_limiter: SlidingWindowRateLimiter = rate_limiter
        self._ledger: IdempotencyLedger = ledger
        self._metrics: Optional[MetricsCollector] = metrics
        self._shutdown_grace_seconds: float = shutdown_grace_seconds

        self._queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        self._running: bool = False
        self._task: Optional[asyncio.Task[None]] = None
        self._in_flight: Optional[QueueItem] = None

        # Metrics (simple counters for observability)
        self.stats: dict[str, int] = {
            "submitted": 0,
            "rate_limited": 0,
            "duplicates": 0,
            "dispatched": 0,
            "errors": 0,
        }

    # -- properties ----------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def depth(self) -> int:
        """Messages waiting behind the one in flight."""
        return self._queue.qsize()

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Start the consumer task."""
        if self._running:
            logger.warning("DispatchQueue already running")
            return

        self._running = True
        self._task = asyncio.create_task(
            self._consume_loop(),
            name="dispatch-queue-consumer",
        )
        logger.info("DispatchQueue started")

    async def stop(self) -> None:
        """Graceful shutdown.

        Lets the in-flight message finish (up to the grace period), then
        cancels the consumer.  Messages still waiting in the queue have
        their futures cancelled; they were never dispatched or recorded.
        """
        if not self._running:
            return

        logger.info(
            "DispatchQueue stopping (in-flight=%s, waiting=%d)",
            self._in_flight.message.id if self._in_flight else None,
            self.depth,
        )
        self._running = False

        deadline: float = time.monotonic() + self._shutdown_grace_seconds
        while self._in_flight is not None and time.monotonic() < deadline:
            await asyncio.sleep(0.05)

        if self._in_flight is not None:
            logger.warning(
                "DispatchQueue force-stopping with email id=%s in flight",
                self._in_flight.message.id,
            )
            self._in_flight.future.cancel()

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        abandoned = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            item.future.cancel()
            self._queue.task_done()
            abandoned += 1
        if abandoned:
            logger.warning("DispatchQueue abandoned %d queued emails", abandoned)

        self._update_depth()
        logger.info("DispatchQueue stopped: stats=%s", self.stats)

    # -- admission -----------------------------------------------------------

    async def submit(
        self,
        message: Message,
        client_key: str = "default",
    ) -> asyncio.Future:
        """Admit *message* and return a future for its outcome.

        Rate-limited and already-recorded messages get a future that is
        resolved before this method returns.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        if not await self._rate_limiter.try_admit(client_key):
            self.stats["rate_limited"] += 1
            self._count_submission("rate_limited")
            logger.info(
                "Email id=%s rejected: client %s over rate limit",
                message.id,
                client_key,
            )
            future.set_result(DispatchOutcome.rate_limited())
            return future

        prior = self._ledger.lookup(message.id)
        if prior is not None:
            self.stats["duplicates"] += 1
            self._count_submission("duplicate")
            logger.debug("Duplicate email id=%s answered at submission", message.id)
            future.set_result(prior.as_duplicate())
            return future

        self._queue.put_nowait(
            QueueItem(message=message, future=future, client_key=client_key)
        )
        self.stats["submitted"] += 1
        self._count_submission("queued")
        self._update_depth()
        return future

    async def drain(self) -> None:
        """Wait until every queued message has been processed."""
        await self._queue.join()

    # -- consumer ------------------------------------------------------------

    async def _consume_loop(self) -> None:
        """Main consume loop.  Runs until ``stop()`` is called."""
        while self._running:
            item = await self._queue.get()
            try:
                await self._process(item)
            finally:
                self._queue.task_done()
                self._update_depth()

    async def _process(self, item: QueueItem) -> None:
        """Dispatch one item and resolve its future."""
        self._in_flight = item
        try:
            outcome = await self._dispatcher.dispatch(item.message)
        except Exception as exc:
            self.stats["errors"] += 1
            logger.error(
                "Unexpected error dispatching email id=%s: %s",
                item.message.id,
                exc,
                exc_info=True,
            )
            if not item.future.done():
                item.future.set_exception(exc)
        else:
            self.stats["dispatched"] += 1
            if not item.future.done():
                item.future.set_result(outcome)
        finally:
            self._in_flight = None

    # -- metrics -------------------------------------------------------------

    def _count_submission(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.submissions.labels(result=result).inc()

    def _update_depth(self) -> None:
        if self._metrics is not None:
            self._metrics.queue_depth.set(self._queue.qsize())
