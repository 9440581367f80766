"""Sensor delegation for fan-out pattern.

SensorDelegate routes every sensor event to all registered backends. Each
backend receives its own state dict from start/complete hook pairs, and a
failing backend never breaks reconciliation.
"""

from typing import Set, Dict, Optional, Any
import logging

from stasher.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("RecoveryRequest", "default/r1", "queue")
        delegate.on_reconcile_complete("RecoveryRequest", "default/r1", state, True)
    """

    def __init__(self) -> None:
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        self._sensors.clear()

    def _each(self, hook: str, *args: Any) -> None:
        for sensor in self._sensors:
            try:
                getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(f"Sensor {sensor.__class__.__name__}.{hook} failed: {e}")

    def _start(self, hook: str, *args: Any) -> Dict[OperatorSensor, Any]:
        states = {}
        for sensor in self._sensors:
            try:
                states[sensor] = getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(f"Sensor {sensor.__class__.__name__}.{hook} failed: {e}")
                states[sensor] = None
        return states

    def on_feed_event(self, kind: str, event_type: str, enqueued: bool) -> None:
        self._each("on_feed_event", kind, event_type, enqueued)

    def on_reconcile_start(
        self, kind: str, key: str, trigger_source: str
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._start("on_reconcile_start", kind, key, trigger_source)

    def on_reconcile_complete(
        self,
        kind: str,
        key: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        state = state or {}
        for sensor in self._sensors:
            try:
                sensor.on_reconcile_complete(kind, key, state.get(sensor), success, error)
            except Exception as e:
                logger.error(
                    f"Sensor {sensor.__class__.__name__}.on_reconcile_complete failed: {e}"
                )

    def on_reconcile_queued(self, kind: str, key: str, queue_depth: int) -> None:
        self._each("on_reconcile_queued", kind, key, queue_depth)

    def on_reconcile_dequeued(self, kind: str, key: str, wait_time: float) -> None:
        self._each("on_reconcile_dequeued", kind, key, wait_time)

    def on_reconcile_retry(self, kind: str, key: str, attempt: int) -> None:
        self._each("on_reconcile_retry", kind, key, attempt)

    def on_reconcile_dropped(self, kind: str, key: str, error: Exception) -> None:
        self._each("on_reconcile_dropped", kind, key, error)

    def on_resource_sync_start(
        self, resource_type: str, name: str, namespace: str, operation: str
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._start(
            "on_resource_sync_start", resource_type, name, namespace, operation
        )

    def on_resource_sync_complete(
        self,
        resource_type: str,
        name: str,
        namespace: str,
        operation: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
    ) -> None:
        state = state or {}
        for sensor in self._sensors:
            try:
                sensor.on_resource_sync_complete(
                    resource_type, name, namespace, operation, state.get(sensor), success
                )
            except Exception as e:
                logger.error(
                    f"Sensor {sensor.__class__.__name__}.on_resource_sync_complete failed: {e}"
                )
