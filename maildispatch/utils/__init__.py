"""maildispatch -- Shared resilience primitives."""

from maildispatch.utils.circuit_breaker import CircuitBreaker, CircuitState
from maildispatch.utils.idempotency import IdempotencyLedger
from maildispatch.utils.rate_limiter import SlidingWindowRateLimiter

__all__ = [
    # circuit breaker
    "CircuitBreaker",
    "CircuitState",
    # rate limiter
    "SlidingWindowRateLimiter",
    # idempotency
    "IdempotencyLedger",
]
