from ramen.backends.base import ReplicationBackend
from ramen.reconciler.context import DONE, REQUEUE, ReconcileContext, ReconcileResult
from ramen.resources.base import BaseStore
from ramen.utils.errors import ClusterDataError, StoreError
from ramen.utils.events import EVENT_DELETE_SUCCESS, EVENT_TYPE_NORMAL, EventReporter


async def reconcile_for_deletion(
    ctx: ReconcileContext, vol_rep: ReplicationBackend, vol_sync: ReplicationBackend
) -> bool:
    """Release the replication objects of every PVC, VolSync first."""
    classification = ctx.classification
    requeue_vol_sync = await vol_sync.reconcile_for_deletion(
        ctx, classification.vol_sync_pvcs
    )
    requeue_vol_rep = await vol_rep.reconcile_for_deletion(
        ctx, classification.vol_rep_pvcs
    )
    return requeue_vol_sync or requeue_vol_rep


async def remove_finalizer(store: BaseStore, ctx: ReconcileContext) -> None:
    """Drop the protection finalizer through a spec update.

    Raises:
        StoreError: if the update failed.
    """
    updated = await store.update_vrg(ctx.vrg.without_finalizer())
    ctx.vrg.refresh_metadata(updated)


async def process_for_deletion(
    ctx: ReconcileContext,
    store: BaseStore,
    vol_rep: ReplicationBackend,
    vol_sync: ReplicationBackend,
    cluster_data,
    events: EventReporter,
) -> ReconcileResult:
    """Tear down what the VolumeReplicationGroup manages, then let it go.

    The finalizer is removed last: only once both backends released their
    PVCs and, for a primary, its PV cluster data is gone from the S3 stores.
    """
    logger = ctx.logger
    logger.info("Entering processing VolumeReplicationGroup for deletion")
    try:
        vrg = ctx.vrg
        if not vrg.has_finalizer():
            logger.info("Finalizer missing from resource, nothing to finalize")
            return DONE

        if await reconcile_for_deletion(ctx, vol_rep, vol_sync):
            logger.info("Requeuing as reconciling VolumeReplication for deletion failed")
            return REQUEUE

        if vrg.is_primary:
            try:
                await cluster_data.delete_backup(vrg)
            except ClusterDataError as e:
                logger.info(
                    f"Requeuing due to failure in deleting PV cluster data from S3 stores: {e}"
                )
                return REQUEUE

        try:
            await remove_finalizer(store, ctx)
        except StoreError as e:
            logger.info(f"Failed to remove finalizer: {e}")
            return REQUEUE

        events.report_once(vrg.body, EVENT_TYPE_NORMAL, EVENT_DELETE_SUCCESS, "Deletion Success")
        return DONE
    finally:
        logger.info("Exiting processing VolumeReplicationGroup")
