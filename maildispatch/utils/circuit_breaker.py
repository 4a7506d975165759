"""
maildispatch -- Per-provider circuit breaker.

Stops the dispatcher from calling a provider after repeated failures.
Two states:

    CLOSED -> normal operation; consecutive failures are counted.
    OPEN   -> attempts are refused until the cooldown has elapsed.

State transitions
-----------------
    CLOSED --[consecutive failures >= threshold]--> OPEN
    OPEN   --[cooldown elapsed, observed by should_allow()]--> CLOSED

There is no separate half-open state: the first check after the cooldown
closes the breaker and resets the failure count, so the next attempt is a
full retry.  If it fails, failures accumulate toward the threshold again.

Usage::

    breaker = CircuitBreaker("ProviderA", threshold=3, cooldown=10.0)
    if breaker.should_allow():
        try:
            await provider.send(message)
        except DeliveryError as exc:
            breaker.record_failure(exc)
        else:
            breaker.record_success()

A breaker is owned by exactly one provider entry and is only mutated by
the single dispatch consumer, so it carries no lock.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# State enum
# --------------------------------------------------------------------------- #


class CircuitState(str, enum.Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"


# --------------------------------------------------------------------------- #
# Core implementation
# --------------------------------------------------------------------------- #


class CircuitBreaker:
    """Consecutive-failure circuit breaker with a lazily observed cooldown.

    Parameters
    ----------
    name:
        Provider name (used in logs and snapshots).
    threshold:
        Consecutive failures that trip the breaker open.  Must be > 0.
    cooldown:
        Seconds the breaker stays open before the next check closes it.
    clock:
        Monotonic time source in seconds.  Tests inject a fake.
    """

    def __init__(
        self,
        name: str,
        threshold: int = 3,
        cooldown: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold <= 0:
            raise ValueError(f"threshold must be > 0, got {threshold}")
        if cooldown < 0:
            raise ValueError(f"cooldown must be >= 0, got {cooldown}")

        self.name = name
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock

        self._is_open: bool = False
        self._failure_count: int = 0
        self._opened_at: float | None = None

        # Counters for observability
        self.total_failures: int = 0
        self.total_rejections: int = 0
        self.total_state_transitions: int = 0

    # -- properties --------------------------------------------------------- #

    @property
    def state(self) -> CircuitState:
        """Stored state.  Reading it never closes the breaker."""
        return CircuitState.OPEN if self._is_open else CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    # -- helpers ------------------------------------------------------------ #

    def _transition(self, new_state: CircuitState) -> None:
        old = self.state
        if old is new_state:
            return
        self._is_open = new_state is CircuitState.OPEN
        self.total_state_transitions += 1
        log = logger.warning if self._is_open else logger.info
        log(
            "circuit_breaker.state_change",
            extra={
                "breaker": self.name,
                "from_state": old.value,
                "to_state": new_state.value,
                "failure_count": self._failure_count,
            },
        )

    # -- public API --------------------------------------------------------- #

    def should_allow(self) -> bool:
        """Return True if an attempt may be made against this provider.

        An open breaker whose cooldown has elapsed is closed here, with its
        failure count reset, before returning True.
        """
        if not self._is_open:
            return True

        elapsed = self._clock() - (self._opened_at or 0.0)
        if elapsed >= self.cooldown:
            self._failure_count = 0
            self._opened_at = None
            self._transition(CircuitState.CLOSED)
            return True

        self.total_rejections += 1
        return False

    def record_success(self) -> None:
        """Reset the consecutive failure count.

        Does not close an open breaker; only the cooldown check does that.
        """
        self._failure_count = 0

    def record_failure(self, exc: BaseException | None = None) -> None:
        """Count a failed attempt, opening the breaker at the threshold."""
        self._failure_count += 1
        self.total_failures += 1
        logger.debug(
            "circuit_breaker.failure",
            extra={
                "breaker": self.name,
                "failure_count": self._failure_count,
                "threshold": self.threshold,
                "error": str(exc) if exc else None,
            },
        )
        if self._failure_count >= self.threshold:
            self._opened_at = self._clock()
            self._transition(CircuitState.OPEN)

    def remaining_cooldown(self) -> float:
        """Seconds until an open breaker will admit the next attempt."""
        if not self._is_open or self._opened_at is None:
            return 0.0
        return max(self.cooldown - (self._clock() - self._opened_at), 0.0)

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot for health output."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "threshold": self.threshold,
            "remaining_cooldown": round(self.remaining_cooldown(), 3),
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
        }

    # -- repr --------------------------------------------------------------- #

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self.name!r}, state={self.state.value}, "
            f"failures={self._failure_count}/{self.threshold})"
        )
