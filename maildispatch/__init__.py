"""maildispatch -- idempotent, best-effort email dispatch core.

Sends each submitted email through an ordered chain of interchangeable
delivery providers, with per-provider circuit breakers, retry with
exponential backoff, a client-facing sliding-window rate limiter and an
in-memory idempotency ledger.
"""

__version__ = "1.0.0"
