"""
maildispatch -- Sliding-window rate limiter for submitting clients.

Each client key (API key header or peer address) gets its own trailing
window of admission timestamps.  A submission is admitted while fewer than
``limit`` admissions remain inside the window.

Usage::

    limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60.0)
    if not await limiter.try_admit(client_key):
        return DispatchOutcome.rate_limited()

Windows are pruned lazily on each check; there is no background sweep.
Keys are never evicted on their own, so memory grows with the number of
distinct clients seen.  Operators that need a bound can call
:meth:`SlidingWindowRateLimiter.sweep_idle_keys` periodically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Per-key sliding-window admission control.

    Parameters
    ----------
    limit:
        Maximum admissions per key inside one window.
    window_seconds:
        Length of the trailing window.
    clock:
        Monotonic time source in seconds.  Tests inject a fake.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {window_seconds}")

        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

        self._windows: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        # Observability counters
        self.total_admitted: int = 0
        self.total_rejected: int = 0

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _prune(self, window: deque[float], now: float) -> None:
        """Drop admissions that fell out of the trailing window."""
        cutoff = now - self.window_seconds
        while window and window[0] < cutoff:
            window.popleft()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def try_admit(self, key: str) -> bool:
        """Admit one submission for *key*, or return False if over limit.

        A rejection leaves the window unchanged.
        """
        async with self._lock_for(key):
            now = self._clock()
            window = self._windows.setdefault(key, deque())
            self._prune(window, now)

            if len(window) >= self.limit:
                self.total_rejected += 1
                logger.info(
                    "rate_limiter.rejected",
                    extra={
                        "client_key": key,
                        "limit": self.limit,
                        "window_seconds": self.window_seconds,
                    },
                )
                return False

            window.append(now)
            self.total_admitted += 1
            return True

    def window_count(self, key: str) -> int:
        """Admissions currently inside *key*'s window."""
        window = self._windows.get(key)
        if not window:
            return 0
        self._prune(window, self._clock())
        return len(window)

    @property
    def tracked_keys(self) -> int:
        return len(self._windows)

    def sweep_idle_keys(self) -> int:
        """Forget keys whose windows are empty.  Returns the number removed.

        Keys whose lock is held by an in-progress check are left alone.
        """
        now = self._clock()
        removed = 0
        for key in list(self._windows):
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            window = self._windows[key]
            self._prune(window, now)
            if not window:
                del self._windows[key]
                self._locks.pop(key, None)
                removed += 1
        if removed:
            logger.debug("rate_limiter.swept", extra={"removed_keys": removed})
        return removed

    # ------------------------------------------------------------------ #
    # repr
    # ------------------------------------------------------------------ #

    def __repr__(self) -> str:
        return (
            f"SlidingWindowRateLimiter(limit={self.limit}, "
            f"window_seconds={self.window_seconds}, keys={self.tracked_keys})"
        )
