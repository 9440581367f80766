"""Stasher Operator Sensor Framework.

Hook-based instrumentation of the reconciliation engine.

Key components:
- OperatorSensor: Base class defining lifecycle hooks
- SensorDelegate: Fan-out to multiple sensor backends
- PrometheusMonitor: Prometheus metrics exporter
"""

from stasher.sensors.base import OperatorSensor
from stasher.sensors.delegate import SensorDelegate
from stasher.sensors.prometheus import PrometheusMonitor
from stasher.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
