"""Prometheus monitoring backend for the stasher operator.

PrometheusMonitor turns sensor hooks into Prometheus metrics, grouped as:

1. Change feed - notifications received and how many reached the queue
2. Reconciliation - duration, queue depth and wait, retries and drops
3. Kubernetes resource sync - operation counts and latency
"""

from typing import Dict, Optional, Any
import time
import logging

from prometheus_client import Counter, Histogram, Gauge, REGISTRY, CollectorRegistry

from stasher.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the stasher operator.

    Metrics:
    - stasher_feed_* - Change feed notifications
    - stasher_reconcile_* - Work queue and reconciliation
    - stasher_resource_* - Kubernetes API side effects
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        super().__init__()

        self.feed_events_total = Counter(
            'stasher_feed_events_total',
            'Total number of change notifications handled by the dispatcher',
            labelnames=['kind', 'event_type', 'enqueued'],
            registry=registry,
        )

        self.reconcile_duration = Histogram(
            'stasher_reconcile_duration_seconds',
            'Time spent reconciling one key',
            labelnames=['kind', 'trigger_source', 'result'],
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            'stasher_reconcile_total',
            'Total number of reconciliation attempts',
            labelnames=['kind', 'trigger_source', 'result'],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            'stasher_reconcile_errors_total',
            'Total number of reconciliation errors',
            labelnames=['kind', 'error_type'],
            registry=registry,
        )

        self.reconcile_queue_depth = Gauge(
            'stasher_reconcile_queue_depth',
            'Number of keys waiting in the work queue',
            labelnames=['kind'],
            registry=registry,
        )

        self.reconcile_queue_wait_seconds = Histogram(
            'stasher_reconcile_queue_wait_seconds',
            'Time a key spent waiting in the work queue',
            labelnames=['kind'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.reconcile_retries = Counter(
            'stasher_reconcile_retries_total',
            'Total number of rate limited re-adds',
            labelnames=['kind'],
            registry=registry,
        )

        self.reconcile_dropped = Counter(
            'stasher_reconcile_dropped_total',
            'Total number of keys dropped after exhausting retries',
            labelnames=['kind', 'error_type'],
            registry=registry,
        )

        self.resource_sync_duration = Histogram(
            'stasher_resource_sync_duration_seconds',
            'Time spent in side-effecting Kubernetes API calls',
            labelnames=['namespace', 'resource_type', 'operation', 'result'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.resource_sync_total = Counter(
            'stasher_resource_sync_total',
            'Total number of side-effecting Kubernetes API calls',
            labelnames=['namespace', 'resource_type', 'operation', 'result'],
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    def on_feed_event(self, kind: str, event_type: str, enqueued: bool) -> None:
        self.feed_events_total.labels(
            kind=kind, event_type=event_type, enqueued=str(enqueued).lower()
        ).inc()

    def on_reconcile_start(
        self, kind: str, key: str, trigger_source: str
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.monotonic(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        kind: str,
        key: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.monotonic() - state['start_time']
            result = 'success' if success else 'failure'
            labels = dict(kind=kind, trigger_source=state['trigger_source'], result=result)
            self.reconcile_duration.labels(**labels).observe(duration)
            self.reconcile_total.labels(**labels).inc()
        if error:
            self.reconcile_errors.labels(
                kind=kind, error_type=error.__class__.__name__
            ).inc()

    def on_reconcile_queued(self, kind: str, key: str, queue_depth: int) -> None:
        self.reconcile_queue_depth.labels(kind=kind).set(queue_depth)

    def on_reconcile_dequeued(self, kind: str, key: str, wait_time: float) -> None:
        self.reconcile_queue_wait_seconds.labels(kind=kind).observe(wait_time)

    def on_reconcile_retry(self, kind: str, key: str, attempt: int) -> None:
        self.reconcile_retries.labels(kind=kind).inc()

    def on_reconcile_dropped(self, kind: str, key: str, error: Exception) -> None:
        self.reconcile_dropped.labels(
            kind=kind, error_type=error.__class__.__name__
        ).inc()

    def on_resource_sync_start(
        self, resource_type: str, name: str, namespace: str, operation: str
    ) -> Optional[Dict[str, Any]]:
        """Record resource sync start time."""
        return {'start_time': time.monotonic()}

    def on_resource_sync_complete(
        self,
        resource_type: str,
        name: str,
        namespace: str,
        operation: str,
        state: Optional[Dict[str, Any]],
        success: bool,
    ) -> None:
        """Record resource sync duration and result."""
        result = 'success' if success else 'failure'
        labels = dict(
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            result=result,
        )
        if state:
            self.resource_sync_duration.labels(**labels).observe(
                time.monotonic() - state['start_time']
            )
        self.resource_sync_total.labels(**labels).inc()
