"""VolumeReplicationGroup reconciler.

One call to `VolumeReplicationGroupReconciler.reconcile` loads the
VolumeReplicationGroup, validates it, splits its PVCs between the
VolumeReplication and VolSync backends and drives it through exactly one of
the deletion, primary or secondary branches. Every branch ends with the
status write, whose outcome decides whether the key is reconciled again.
"""

import asyncio
import logging
from typing import Optional, Tuple
from ramen.backends.base import ReplicationBackend
from ramen.reconciler import conditions as conds
from ramen.reconciler.classification import classify_pvcs
from ramen.reconciler.context import DONE, REQUEUE, ReconcileContext, ReconcileResult
from ramen.reconciler.deletion import process_for_deletion
from ramen.reconciler.loader import (
    load_vrg,
    validate_vrg_mode,
    validate_vrg_spec,
    validate_vrg_state,
)
from ramen.reconciler.status import update_vrg_status
from ramen.resources.base import BaseStore
from ramen.types.settings import Settings
from ramen.utils.errors import ClassificationError, ClusterDataError, StoreError, ValidationError
from ramen.utils.events import (
    EVENT_PRIMARY_SUCCESS,
    EVENT_SECONDARY_SUCCESS,
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
    EVENT_VALIDATION_FAILED,
    EventReporter,
)
from ramen.utils.helpers import split_namespaced_name

logger = logging.getLogger(__name__)

BRANCH_DELETION = "deletion"
BRANCH_PRIMARY = "primary"
BRANCH_SECONDARY = "secondary"
BRANCH_NONE = "none"


class VRGLogger(logging.LoggerAdapter):
    """Prefix records with the `namespace/name` of the VolumeReplicationGroup."""

    def process(self, msg, kwargs):
        return f"[{self.extra['vrg']}] {msg}", kwargs


class VolumeReplicationGroupReconciler:
    """Drive VolumeReplicationGroups to their desired replication state."""

    def __init__(
        self,
        store: BaseStore,
        vol_rep: ReplicationBackend,
        vol_sync: ReplicationBackend,
        cluster_data,
        events: EventReporter,
        settings: Settings,
        sensor=None,
    ):
        self.store = store
        self.vol_rep = vol_rep
        self.vol_sync = vol_sync
        self.cluster_data = cluster_data
        self.events = events
        self.settings = settings
        self.sensor = sensor

    async def reconcile(self, key: str, trigger_source: str = "queue") -> ReconcileResult:
        """Reconcile the VolumeReplicationGroup stored under `key` (`namespace/name`).

        Raises:
            StoreError: if the VolumeReplicationGroup cannot be read. The
                caller retries with backoff.
        """
        namespace, name = split_namespaced_name(key)
        log = VRGLogger(logger, {"vrg": key})
        log.info("Entering reconcile loop")

        sensor_state = None
        if self.sensor:
            sensor_state = self.sensor.on_reconcile_start(name, namespace, trigger_source)
        branch, result, error = BRANCH_NONE, None, None
        try:
            vrg = await load_vrg(self.store, namespace, name)
            if vrg is None:
                log.info("Resource not found")
                result = DONE
                return result
            branch = self._branch(vrg)
            ctx = ReconcileContext.load(vrg, log)
            result, ctx = await self.process_vrg(ctx)
            classification = ctx.classification
            log.info(
                f"VolRep count {len(classification.vol_rep_pvcs)}, "
                f"VolSync count {len(classification.vol_sync_pvcs)}"
            )
            return result
        except asyncio.CancelledError as e:
            log.info("Reconcile cancelled")
            error = e
            raise
        except Exception as e:
            log.error(f"Failed to reconcile: {e}")
            error = e
            raise
        finally:
            if self.sensor:
                self.sensor.on_reconcile_complete(
                    name, namespace, sensor_state, self._result_label(result, error), branch, error
                )
            log.info("Exiting reconcile loop")

    @staticmethod
    def _branch(vrg) -> str:
        if vrg.is_deleting:
            return BRANCH_DELETION
        if vrg.is_primary:
            return BRANCH_PRIMARY
        return BRANCH_SECONDARY

    @staticmethod
    def _result_label(result: Optional[ReconcileResult], error: Optional[BaseException]) -> str:
        if isinstance(error, asyncio.CancelledError):
            return "cancelled"
        if error is not None or result is None:
            return "error"
        if result.requeue:
            return "requeue"
        if result.requeue_after is not None:
            return "requeue_after"
        return "settled"

    def initialize_status(self, ctx: ReconcileContext) -> None:
        if ctx.status.get("protectedPVCs") is None:
            ctx.status["protectedPVCs"] = []
            conds.set_initial_conditions(
                ctx.status, ctx.generation, "Initializing VolumeReplicationGroup"
            )

    async def process_vrg(
        self, ctx: ReconcileContext
    ) -> Tuple[ReconcileResult, ReconcileContext]:
        self.initialize_status(ctx)

        for validate, message in (
            (validate_vrg_spec, "VolumeReplicationGroup spec is invalid"),
            (validate_vrg_state, "VolumeReplicationGroup state is invalid"),
            (validate_vrg_mode, "VolumeReplicationGroup mode is invalid"),
        ):
            try:
                validate(ctx.vrg)
            except ValidationError as e:
                return await self.handle_validation_failure(ctx, e, message), ctx

        try:
            classification = await classify_pvcs(self.store, ctx)
        except ClassificationError as e:
            ctx.logger.error(f"Failed to update PersistentVolumeClaims for resource: {e}")
            self.events.report_once(
                ctx.vrg.body, EVENT_TYPE_WARNING, EVENT_VALIDATION_FAILED, str(e)
            )
            conds.set_data_error_condition(
                ctx.status, ctx.generation, "Failed to get list of pvcs"
            )
            _, err = await self._update_status(ctx)
            if err:
                ctx.logger.error(f"VRG status update failed: {err}")
            return REQUEUE, ctx

        ctx = ctx.with_classification(classification)
        if self.sensor:
            self.sensor.on_pvcs_classified(
                ctx.vrg.name,
                ctx.vrg.namespace,
                len(classification.vol_rep_pvcs),
                len(classification.vol_sync_pvcs),
            )
        return await self.process_vrg_actions(ctx), ctx

    async def process_vrg_actions(self, ctx: ReconcileContext) -> ReconcileResult:
        if ctx.vrg.is_deleting:
            return await process_for_deletion(
                ctx, self.store, self.vol_rep, self.vol_sync, self.cluster_data, self.events
            )
        if ctx.vrg.is_primary:
            return await self.process_as_primary(ctx)
        return await self.process_as_secondary(ctx)

    async def handle_validation_failure(
        self, ctx: ReconcileContext, error: ValidationError, message: str
    ) -> ReconcileResult:
        """Report an invalid spec once. It is not retried until the spec changes."""
        ctx.logger.error(f"Invalid request detected: {error}")
        self.events.report_once(
            ctx.vrg.body, EVENT_TYPE_WARNING, EVENT_VALIDATION_FAILED, str(error)
        )
        conds.set_data_error_condition(ctx.status, ctx.generation, message)
        _, err = await self._update_status(ctx)
        if err:
            ctx.logger.error(f"Status update failed: {err}")
            return REQUEUE
        return DONE

    async def _update_status(self, ctx: ReconcileContext, update_conditions: bool = False):
        return await update_vrg_status(
            self.store,
            ctx,
            self.vol_rep,
            self.vol_sync,
            update_conditions_=update_conditions,
            sensor=self.sensor,
        )

    async def add_finalizer(self, ctx: ReconcileContext) -> None:
        """Raises StoreError if the finalizer could not be added."""
        vrg = ctx.vrg
        if vrg.has_finalizer():
            return
        updated = await self.store.update_vrg(vrg.with_finalizer())
        vrg.refresh_metadata(updated)

    async def _ensure_finalizer(self, ctx: ReconcileContext) -> bool:
        try:
            await self.add_finalizer(ctx)
        except StoreError as e:
            ctx.logger.info(f"Failed to add finalizer: {e}")
            conds.set_data_error_condition(
                ctx.status,
                ctx.generation,
                "Failed to add finalizer to VolumeReplicationGroup",
            )
            _, err = await self._update_status(ctx)
            if err:
                ctx.logger.error(f"VRG status update failed: {err}")
            return False
        return True

    async def restore_pvs(self, ctx: ReconcileContext) -> None:
        """Restore PV cluster data before running as primary, once per generation.

        Raises:
            ClusterDataError: if either backend failed to restore.
        """
        if conds.Conditions(ctx.status.get("conditions")).is_true(
            conds.CLUSTER_DATA_READY, ctx.generation
        ):
            ctx.logger.info(
                "VRG's ClusterDataReady condition found. PV restore must have already been applied"
            )
            return

        try:
            await self.vol_sync.restore_pvs(ctx)
        except ClusterDataError as e:
            ctx.logger.info("VolSync PV restore failed")
            raise ClusterDataError(f"failed to restore PVs for VolSync ({e})") from e

        try:
            await self.vol_rep.restore_pvs(ctx)
        except ClusterDataError as e:
            ctx.logger.info("VolRep PV restore failed")
            raise ClusterDataError(f"failed to restore PVs for VolRep ({e})") from e

        conds.set_cluster_data_ready_condition(
            ctx.status, ctx.generation, "Restored PV cluster data"
        )

    async def reconcile_as_primary(self, ctx: ReconcileContext) -> bool:
        classification = ctx.classification
        requeue_vol_sync = False
        if classification.vol_sync_pvcs:
            requeue_vol_sync = await self.vol_sync.reconcile_as_primary(
                ctx, classification.vol_sync_pvcs
            )
        requeue_vol_rep = await self.vol_rep.reconcile_as_primary(
            ctx, classification.vol_rep_pvcs
        )
        return requeue_vol_sync or requeue_vol_rep

    async def reconcile_as_secondary(self, ctx: ReconcileContext) -> bool:
        classification = ctx.classification
        if await self.vol_sync.reconcile_as_secondary(ctx, classification.vol_sync_pvcs):
            return True
        return await self.vol_rep.reconcile_as_secondary(ctx, classification.vol_rep_pvcs)

    async def _finish(
        self, ctx: ReconcileContext, requeue: bool, success_reason: str, success_message: str
    ) -> ReconcileResult:
        if not requeue:
            self.events.report_once(
                ctx.vrg.body, EVENT_TYPE_NORMAL, success_reason, success_message
            )
        status_requeue, err = await self._update_status(ctx, update_conditions=True)
        if err:
            requeue = True
        if requeue or status_requeue:
            ctx.logger.info(f"Requeuing resource as {ctx.vrg.replication_state}")
            return ReconcileResult(requeue_after=self.settings.requeue_delay_seconds)
        ctx.logger.info(f"Successfully processed vrg as {ctx.vrg.replication_state}")
        return DONE

    async def process_as_primary(self, ctx: ReconcileContext) -> ReconcileResult:
        ctx.logger.info("Entering processing VolumeReplicationGroup as Primary")
        try:
            if not await self._ensure_finalizer(ctx):
                return REQUEUE

            try:
                await self.restore_pvs(ctx)
            except ClusterDataError as e:
                ctx.logger.info(f"Restoring PVs failed: {e}")
                conds.set_cluster_data_error_condition(
                    ctx.status, ctx.generation, f"Failed to restore PVs ({e})"
                )
                _, err = await self._update_status(ctx)
                if err:
                    ctx.logger.error(f"VRG status update failed: {err}")
                return REQUEUE

            requeue = await self.reconcile_as_primary(ctx)
            return await self._finish(ctx, requeue, EVENT_PRIMARY_SUCCESS, "Primary Success")
        finally:
            ctx.logger.info("Exiting processing VolumeReplicationGroup")

    async def process_as_secondary(self, ctx: ReconcileContext) -> ReconcileResult:
        ctx.logger.info("Entering processing VolumeReplicationGroup as Secondary")
        try:
            if not await self._ensure_finalizer(ctx):
                return REQUEUE

            requeue = await self.reconcile_as_secondary(ctx)
            return await self._finish(
                ctx, requeue, EVENT_SECONDARY_SUCCESS, "Secondary Success"
            )
        finally:
            ctx.logger.info("Exiting processing VolumeReplicationGroup")
