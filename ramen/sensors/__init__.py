"""VolumeReplicationGroup Operator Sensor Framework.

Hook-based instrumentation of the reconcile loop, inspired by Faust's sensor
architecture.

Key components:
- OperatorSensor: Base class defining lifecycle hooks for operator events
- SensorDelegate: Fan-out pattern for routing events to multiple sensor backends
- PrometheusMonitor: Prometheus metrics exporter
"""

from ramen.sensors.base import OperatorSensor
from ramen.sensors.delegate import SensorDelegate
from ramen.sensors.prometheus import PrometheusMonitor
from ramen.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
