"""Prometheus metrics for the dispatch core.

- submissions by admission result (queued / rate_limited / duplicate)
- recorded outcomes by status
- provider attempts by result (success / failure / skipped)
- queue depth
- circuit breaker state per provider
- end-to-end dispatch latency
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram, start_http_server,
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Prometheus metrics bound to one registry.

    Each dispatch core owns its collector, so several cores (or tests) can
    coexist in a process without colliding in the default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._started = False

        # === Admission ===
        self.submissions = Counter(
            'maildispatch_submissions_total',
            'Submissions by admission result',
            ['result'],
            registry=self.registry,
        )

        # === Outcomes ===
        self.outcomes = Counter(
            'maildispatch_outcomes_total',
            'Recorded dispatch outcomes by status',
            ['status'],
            registry=self.registry,
        )

        # === Providers ===
        self.provider_attempts = Counter(
            'maildispatch_provider_attempts_total',
            'Provider delivery attempts by result',
            ['provider', 'result'],
            registry=self.registry,
        )

        self.circuit_breaker_state = Gauge(
            'maildispatch_circuit_breaker_state',
            'Circuit breaker state (0=closed, 1=open)',
            ['provider'],
            registry=self.registry,
        )

        # === Queue ===
        self.queue_depth = Gauge(
            'maildispatch_queue_depth',
            'Messages waiting for the dispatch consumer',
            registry=self.registry,
        )

        self.dispatch_latency = Histogram(
            'maildispatch_dispatch_latency_seconds',
            'Time spent dispatching one message across the provider chain',
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=self.registry,
        )

    def start_server(self, port: int):
        """Start Prometheus HTTP server."""
        if self._started:
            return
        try:
            start_http_server(port, registry=self.registry)
            self._started = True
            logger.info(f"Prometheus metrics server started on port {port}")
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")

    def sample(self, name: str, labels: Optional[dict] = None) -> float:
        """Current value of a sample, 0.0 if it was never set."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0
