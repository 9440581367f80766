"""Unit tests for the sensor framework."""

from unittest.mock import Mock

from prometheus_client import CollectorRegistry

from stasher.sensors import OperatorSensor, PrometheusMonitor, SensorDelegate


class TestSensorDelegate:
    def test_fan_out_with_per_sensor_state(self):
        first, second = Mock(), Mock()
        first.on_reconcile_start.return_value = {"id": 1}
        second.on_reconcile_start.return_value = {"id": 2}
        delegate = SensorDelegate()
        delegate.add(first)
        delegate.add(second)

        state = delegate.on_reconcile_start("BackupPolicy", "default/p1", "event")
        delegate.on_reconcile_complete("BackupPolicy", "default/p1", state, True)

        first.on_reconcile_complete.assert_called_once_with(
            "BackupPolicy", "default/p1", {"id": 1}, True, None
        )
        second.on_reconcile_complete.assert_called_once_with(
            "BackupPolicy", "default/p1", {"id": 2}, True, None
        )

    def test_failing_sensor_is_isolated(self):
        broken, healthy = Mock(), Mock()
        broken.on_reconcile_queued.side_effect = RuntimeError("broken")
        delegate = SensorDelegate()
        delegate.add(broken)
        delegate.add(healthy)

        delegate.on_reconcile_queued("BackupPolicy", "default/p1", 3)

        healthy.on_reconcile_queued.assert_called_once_with("BackupPolicy", "default/p1", 3)

    def test_remove(self):
        sensor = Mock()
        delegate = SensorDelegate()
        delegate.add(sensor)
        delegate.remove(sensor)
        delegate.on_reconcile_dropped("BackupPolicy", "default/p1", RuntimeError())
        sensor.on_reconcile_dropped.assert_not_called()

    def test_base_sensor_hooks_are_noops(self):
        sensor = OperatorSensor()
        assert sensor.on_reconcile_start("k", "key", "event") is None
        assert sensor.on_resource_sync_start("Job", "n", "ns", "create") is None


class TestPrometheusMonitor:
    def test_reconcile_metrics(self):
        registry = CollectorRegistry()
        monitor = PrometheusMonitor(registry=registry)

        state = monitor.on_reconcile_start("RecoveryRequest", "default/r1", "event")
        monitor.on_reconcile_complete(
            "RecoveryRequest", "default/r1", state, False, RuntimeError("boom")
        )

        labels = {"kind": "RecoveryRequest", "trigger_source": "event", "result": "failure"}
        assert registry.get_sample_value("stasher_reconcile_total", labels) == 1
        assert registry.get_sample_value(
            "stasher_reconcile_errors_total",
            {"kind": "RecoveryRequest", "error_type": "RuntimeError"},
        ) == 1

    def test_queue_and_resource_metrics(self):
        registry = CollectorRegistry()
        monitor = PrometheusMonitor(registry=registry)

        monitor.on_reconcile_queued("BackupPolicy", "default/p1", 4)
        state = monitor.on_resource_sync_start("Job", "stasher-r1", "default", "create")
        monitor.on_resource_sync_complete("Job", "stasher-r1", "default", "create", state, True)
        monitor.on_feed_event("BackupPolicy", "Updated", False)

        assert registry.get_sample_value(
            "stasher_reconcile_queue_depth", {"kind": "BackupPolicy"}
        ) == 4
        assert registry.get_sample_value(
            "stasher_resource_sync_total",
            {"namespace": "default", "resource_type": "Job", "operation": "create", "result": "success"},
        ) == 1
        assert registry.get_sample_value(
            "stasher_feed_events_total",
            {"kind": "BackupPolicy", "event_type": "Updated", "enqueued": "false"},
        ) == 1
