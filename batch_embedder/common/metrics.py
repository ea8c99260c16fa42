"""Metrics collection for the batch embedder.

Provides a thin convenience wrapper around ``prometheus_client`` so the
pipeline and the HTTP service record batch, attempt, gate, and request
metrics consistently.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (inject one for tests)
"""

from typing import Optional

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        # HTTP
        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        # Pipeline
        self.pipeline_runs = Counter(
            'embedding_pipeline_runs_total',
            'Total pipeline invocations',
            ['provider', 'mode'],
            registry=self.registry
        )

        self.pipeline_duration = Histogram(
            'embedding_pipeline_duration_seconds',
            'Pipeline invocation duration',
            ['provider'],
            registry=self.registry
        )

        self.batch_outcomes = Counter(
            'embedding_batch_outcomes_total',
            'Terminal batch outcomes',
            ['provider', 'status'],
            registry=self.registry
        )

        self.batch_duration = Histogram(
            'embedding_batch_duration_seconds',
            'Time from first attempt to terminal outcome for a batch',
            ['provider'],
            registry=self.registry
        )

        self.attempts = Counter(
            'embedding_batch_attempts_total',
            'Single-batch provider calls',
            ['provider', 'result'],
            registry=self.registry
        )

        self.retries = Counter(
            'embedding_batch_retries_total',
            'Retries scheduled after a retryable failure',
            ['provider', 'error_class'],
            registry=self.registry
        )

        self.placeholder_items = Counter(
            'embedding_placeholder_items_total',
            'Items answered with a zero placeholder vector',
            ['provider'],
            registry=self.registry
        )

        # Concurrency gate
        self.gate_in_flight = Gauge(
            'embedding_gate_in_flight',
            'Batch calls currently holding a gate permit',
            registry=self.registry
        )

        self.gate_wait = Histogram(
            'embedding_gate_wait_seconds',
            'Time spent waiting for a gate permit',
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics (duration in seconds)."""
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_pipeline_run(self, provider: str, mode: str, duration: float) -> None:
        """Record one pipeline invocation; ``mode`` is ``empty``, ``single`` or ``batched``."""
        self.pipeline_runs.labels(provider=provider, mode=mode).inc()
        self.pipeline_duration.labels(provider=provider).observe(duration)

    def record_batch_outcome(self, provider: str, status: str, duration: Optional[float] = None) -> None:
        """Record a terminal batch outcome."""
        self.batch_outcomes.labels(provider=provider, status=status).inc()
        if duration is not None:
            self.batch_duration.labels(provider=provider).observe(duration)

    def record_attempt(self, provider: str, result: str) -> None:
        """Record a single provider call (``success`` or ``error``)."""
        self.attempts.labels(provider=provider, result=result).inc()

    def record_retry(self, provider: str, error_class: str) -> None:
        """Record a scheduled retry."""
        self.retries.labels(provider=provider, error_class=error_class).inc()

    def record_placeholders(self, provider: str, count: int) -> None:
        """Record items that received placeholder vectors."""
        if count > 0:
            self.placeholder_items.labels(provider=provider).inc(count)

    def set_gate_in_flight(self, count: int) -> None:
        """Set the number of permits currently held."""
        self.gate_in_flight.set(count)

    def record_gate_wait(self, duration: float) -> None:
        """Record how long an acquirer waited for a permit."""
        self.gate_wait.observe(duration)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str = "batch-embedder") -> MetricsCollector:
    """Get or create the process-wide metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
