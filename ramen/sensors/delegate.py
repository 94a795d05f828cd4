"""Sensor delegation for fan-out pattern.

This module provides SensorDelegate, which implements the delegation pattern
for routing sensor events to multiple monitoring backends simultaneously.
Each backend receives the same events and can maintain independent state.
A failing sensor is logged and never breaks the reconcile loop.
"""

from typing import Set, Dict, Optional, Any
import logging

from ramen.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("my-vrg", "default", "queue")
        delegate.on_reconcile_complete("my-vrg", "default", state, "settled", "primary")
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
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def _each(self, hook: str, *args) -> None:
        for sensor in self._sensors:
            try:
                getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        if not self._sensors:
            return None

        states = {}
        for sensor in self._sensors:
            try:
                state = sensor.on_reconcile_start(name, namespace, trigger_source)
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.on_reconcile_start: {e}",
                    exc_info=True,
                )

        return states if states else None

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        result: str,
        branch: str,
        error: Optional[BaseException] = None,
    ) -> None:
        """Delegate reconcile_complete to all sensors with their specific state."""
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_reconcile_complete(
                    name, namespace, sensor_state, result, branch, error
                )
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.on_reconcile_complete: {e}",
                    exc_info=True,
                )

    def on_reconcile_queued(self, key: str, queue_depth: int) -> None:
        self._each("on_reconcile_queued", key, queue_depth)

    def on_reconcile_dequeued(self, key: str, wait_time: float) -> None:
        self._each("on_reconcile_dequeued", key, wait_time)

    def on_pvcs_classified(
        self, name: str, namespace: str, vol_rep_count: int, vol_sync_count: int
    ) -> None:
        self._each("on_pvcs_classified", name, namespace, vol_rep_count, vol_sync_count)

    def on_status_write(self, name: str, namespace: str, success: bool) -> None:
        self._each("on_status_write", name, namespace, success)
