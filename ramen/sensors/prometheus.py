"""Prometheus monitoring backend for the VolumeReplicationGroup operator.

This module provides PrometheusMonitor, which collects operator lifecycle events
and exposes them as Prometheus metrics:

1. Reconciliation Loop Health - Duration, throughput, errors, queue depth and wait
2. Classification - PVCs handled by each replication backend
3. Status Writes - Status subresource writes and their outcome

All metrics include labels for multi-dimensional analysis (name, namespace, etc.).
"""

from typing import Dict, Optional, Any
import time
import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from ramen.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the VolumeReplicationGroup operator.

    Metrics are organized into three categories:
    - ramen_reconcile_* - Reconciliation loop metrics
    - ramen_protected_pvcs - PVC classification per backend
    - ramen_status_writes_total - Status subresource writes

    Example:
        monitor = PrometheusMonitor()

        state = monitor.on_reconcile_start("my-vrg", "default", "queue")
        monitor.on_reconcile_complete("my-vrg", "default", state, "settled", "primary")
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        super().__init__()

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'ramen_reconcile_duration_seconds',
            'Time spent in one reconcile invocation',
            labelnames=['name', 'namespace', 'branch', 'result'],
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            'ramen_reconcile_total',
            'Total number of reconcile invocations',
            labelnames=['name', 'namespace', 'branch', 'result'],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            'ramen_reconcile_errors_total',
            'Total number of reconcile invocations that raised',
            labelnames=['name', 'namespace', 'error_type'],
            registry=registry,
        )

        self.reconcile_queue_depth = Gauge(
            'ramen_reconcile_queue_depth',
            'Number of VolumeReplicationGroups waiting to be reconciled',
            registry=registry,
        )

        self.reconcile_queue_wait_seconds = Histogram(
            'ramen_reconcile_queue_wait_seconds',
            'Time spent waiting in the reconcile queue',
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=registry,
        )

        # =============================================================================
        # Classification Metrics
        # =============================================================================

        self.protected_pvcs = Gauge(
            'ramen_protected_pvcs',
            'PVCs of a VolumeReplicationGroup by replication backend',
            labelnames=['name', 'namespace', 'backend'],
            registry=registry,
        )

        # =============================================================================
        # Status Update Metrics
        # =============================================================================

        self.status_writes = Counter(
            'ramen_status_writes_total',
            'Total number of status subresource writes',
            labelnames=['name', 'namespace', 'result'],
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.time(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        result: str,
        branch: str,
        error: Optional[BaseException] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state['start_time']
            self.reconcile_duration.labels(
                name=name,
                namespace=namespace,
                branch=branch,
                result=result,
            ).observe(duration)

        self.reconcile_total.labels(
            name=name,
            namespace=namespace,
            branch=branch,
            result=result,
        ).inc()

        if error is not None and result == 'error':
            self.reconcile_errors.labels(
                name=name,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    def on_reconcile_queued(self, key: str, queue_depth: int) -> None:
        """Record reconciliation queue depth."""
        self.reconcile_queue_depth.set(queue_depth)

    def on_reconcile_dequeued(self, key: str, wait_time: float) -> None:
        """Record time spent waiting in queue."""
        self.reconcile_queue_wait_seconds.observe(wait_time)

    # =============================================================================
    # Classification and Status Hooks
    # =============================================================================

    def on_pvcs_classified(
        self, name: str, namespace: str, vol_rep_count: int, vol_sync_count: int
    ) -> None:
        self.protected_pvcs.labels(name=name, namespace=namespace, backend='volrep').set(
            vol_rep_count
        )
        self.protected_pvcs.labels(name=name, namespace=namespace, backend='volsync').set(
            vol_sync_count
        )

    def on_status_write(self, name: str, namespace: str, success: bool) -> None:
        self.status_writes.labels(
            name=name,
            namespace=namespace,
            result='success' if success else 'failure',
        ).inc()
