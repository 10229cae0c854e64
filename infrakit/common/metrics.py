"""Metrics collection for remote client calls."""

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter


class ClientMetrics:
    """Prometheus metrics for retried and paginated remote calls."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry if registry is not None else REGISTRY
        self.registry = registry
        self.attempts_total = Counter(
            'infrakit_call_attempts_total',
            'Remote call attempts',
            ['outcome'],
            registry=registry,
        )
        self.pages_fetched_total = Counter(
            'infrakit_pages_fetched_total',
            'Pages fetched by paginated listings',
            registry=registry,
        )
        self.errors_total = Counter(
            'infrakit_call_errors_total',
            'Remote calls that failed terminally',
            ['error_type'],
            registry=registry,
        )

    def record_attempt(self, outcome: str):
        """Record one attempt ("success", "transient" or "fatal")."""
        self.attempts_total.labels(outcome=outcome).inc()

    def record_page(self):
        """Record one fetched page."""
        self.pages_fetched_total.inc()

    def record_failure(self, error_type: str):
        """Record a terminal failure."""
        self.errors_total.labels(error_type=error_type).inc()


_default_metrics: Optional[ClientMetrics] = None


def get_metrics() -> ClientMetrics:
    """Return the process-wide metrics registered on the default registry."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = ClientMetrics()
    return _default_metrics
