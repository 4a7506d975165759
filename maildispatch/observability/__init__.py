"""maildispatch -- Observability package.

Prometheus metrics for admission, dispatch and provider health.
"""

from maildispatch.observability.metrics import MetricsCollector

__all__: list[str] = [
    "MetricsCollector",
]
