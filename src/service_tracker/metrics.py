"""
Prometheus metrics for the service tracker.

Metrics are registered on an injectable ``CollectorRegistry`` so that several
managers (or tests) do not collide on the process-global default registry.
"""

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

logger = logging.getLogger(__name__)

NAMESPACE = "service_tracker"
LABELS = ["application", "service"]


class TrackerMetrics:
    """Counters and gauges shared by all trackers of one manager."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.polls = Counter(
            "polls",
            "Completed poll cycles",
            labelnames=LABELS,
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.faults = Counter(
            "faults",
            "Poll faults by error type",
            labelnames=LABELS + ["error"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.publishes = Counter(
            "publishes",
            "Pool publications by operation",
            labelnames=LABELS + ["operation"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.pending_batches = Gauge(
            "pending_batches",
            "Address lookup batches waiting in the queue",
            labelnames=LABELS,
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.instances = Gauge(
            "instances",
            "Instances in the current directory snapshot",
            labelnames=LABELS,
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def for_tracker(self, application: str, service: str) -> "BoundTrackerMetrics":
        return BoundTrackerMetrics(self, application, service)

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")


class BoundTrackerMetrics:
    """TrackerMetrics with the application/service labels already applied."""

    def __init__(self, metrics: TrackerMetrics, application: str, service: str):
        self._metrics = metrics
        self._labels = {"application": application, "service": service}

    def record_poll(self) -> None:
        self._metrics.polls.labels(**self._labels).inc()

    def record_fault(self, error: BaseException | None) -> None:
        error_name = type(error).__name__ if error is not None else "unknown"
        self._metrics.faults.labels(error=error_name, **self._labels).inc()

    def record_publish(self, operation: str) -> None:
        self._metrics.publishes.labels(operation=operation, **self._labels).inc()

    def set_pending_batches(self, count: int) -> None:
        self._metrics.pending_batches.labels(**self._labels).set(count)

    def set_instances(self, count: int) -> None:
        self._metrics.instances.labels(**self._labels).set(count)
