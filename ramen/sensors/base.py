"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring the reconcile loop, the work queue and the status writes. All
hooks are no-ops by default, allowing subclasses to override only the events
they care about.

The hook pattern follows Faust's sensor design:
- Hooks come in pairs: on_X_start() and on_X_complete()
- Start hooks return an optional state dict for tracking multi-phase operations
- Complete hooks receive the state dict from their corresponding start hook
- All hooks are optional - sensors only implement what they need
"""

from typing import Dict, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for VolumeReplicationGroup operator monitoring.

    Example:
        class LoggingSensor(OperatorSensor):
            def on_reconcile_start(self, name, namespace, trigger_source):
                return {'start_time': time.time()}

            def on_reconcile_complete(self, name, namespace, state, result, branch, error=None):
                duration = time.time() - state['start_time']
                logger.info(f"Reconciled {name} in {duration}s ({result})")
    """

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a reconcile invocation begins.

        Args:
            name: VolumeReplicationGroup name
            namespace: Kubernetes namespace
            trigger_source: What triggered reconciliation (queue, manual)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        result: str,
        branch: str,
        error: Optional[BaseException] = None,
    ) -> None:
        """Called when a reconcile invocation ends.

        Args:
            name: VolumeReplicationGroup name
            namespace: Kubernetes namespace
            state: State dict returned from on_reconcile_start
            result: settled, requeue, requeue_after, error or cancelled
            branch: deletion, primary, secondary or none
            error: Exception if reconciliation failed or was cancelled
        """
        pass

    def on_reconcile_queued(self, key: str, queue_depth: int) -> None:
        """Called when a key is put on the work queue.

        Args:
            key: `namespace/name` of the VolumeReplicationGroup
            queue_depth: Number of keys waiting
        """
        pass

    def on_reconcile_dequeued(self, key: str, wait_time: float) -> None:
        """Called when a worker takes a key off the work queue.

        Args:
            key: `namespace/name` of the VolumeReplicationGroup
            wait_time: Time spent in queue (seconds)
        """
        pass

    # =============================================================================
    # Classification and Status Hooks
    # =============================================================================

    def on_pvcs_classified(
        self,
        name: str,
        namespace: str,
        vol_rep_count: int,
        vol_sync_count: int,
    ) -> None:
        """Called after the PVCs of a VolumeReplicationGroup are split between backends."""
        pass

    def on_status_write(self, name: str, namespace: str, success: bool) -> None:
        """Called after a status subresource write was attempted."""
        pass

    # =============================================================================
    # Utility Methods
    # =============================================================================

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary."""
        return {}
