"""Summary conditions and the VolumeReplicationGroup status write.

`DataReady`, `DataProtected` and `ClusterDataProtected` are rolled up from
the per-PVC conditions each backend keeps in `status.protectedPVCs`. The
VolSync verdict is applied first; when any PVC is protected by
VolumeReplication its verdict replaces it. `ClusterDataReady` is not a PVC
level condition and is left alone here.
"""

from typing import Optional, Tuple
from ramen.backends.base import ReplicationBackend
from ramen.reconciler import conditions as conds
from ramen.reconciler.context import ReconcileContext
from ramen.resources.base import BaseStore
from ramen.types.models import PRIMARY, SECONDARY
from ramen.utils.errors import StoreError
from ramen.utils.helpers import deep_compare_dict, deep_copy, now

STATE_PRIMARY = "Primary"
STATE_SECONDARY = "Secondary"
STATE_UNKNOWN = "Unknown"


def state_from_replication_state(replication_state: Optional[str]) -> str:
    if replication_state == PRIMARY:
        return STATE_PRIMARY
    if replication_state == SECONDARY:
        return STATE_SECONDARY
    return STATE_UNKNOWN


def update_conditions(
    ctx: ReconcileContext,
    vol_rep: ReplicationBackend,
    vol_sync: ReplicationBackend,
) -> None:
    """Roll the per-PVC conditions of both backends up into the summary conditions."""
    classification = ctx.classification
    if not classification.vol_rep_pvcs and not classification.vol_sync_pvcs:
        conds.set_unused_conditions(ctx.status, ctx.generation)
        return

    for type_ in conds.AGGREGATED_TYPES:
        aggregated = vol_sync.aggregate_condition(
            ctx, type_, classification.vol_sync_pvcs
        )
        if classification.vol_rep_pvcs:
            aggregated = vol_rep.aggregate_condition(
                ctx, type_, classification.vol_rep_pvcs
            )
        if aggregated is not None:
            conds.set_condition(ctx.status, aggregated)


def update_status_state(ctx: ReconcileContext) -> None:
    """Derive `status.state` from `DataReady` and the desired replication state.

    The state only follows the spec once the transition completed, that is
    once `DataReady` is True.
    """
    data_ready = conds.find_condition(ctx.status, conds.DATA_READY)
    if data_ready is None:
        ctx.logger.info("Failed to find the DataReady condition in status")
        return

    state = state_from_replication_state(ctx.vrg.replication_state)
    if data_ready.get("status") == conds.TRUE:
        ctx.status["state"] = state
    elif data_ready.get("reason") == conds.REASON_ERROR:
        ctx.status["state"] = STATE_UNKNOWN
    elif state == STATE_UNKNOWN:
        ctx.status["state"] = state


async def update_vrg_status(
    store: BaseStore,
    ctx: ReconcileContext,
    vol_rep: Optional[ReplicationBackend] = None,
    vol_sync: Optional[ReplicationBackend] = None,
    update_conditions_: bool = False,
    sensor=None,
) -> Tuple[bool, Optional[Exception]]:
    """Write the draft status when it differs from the one loaded.

    Returns:
        `(requeue, error)`: `requeue` is True when the write failed or the
        required summary conditions are not all True; `error` is the write
        failure, if any.
    """
    ctx.logger.info("Updating VRG status")

    if update_conditions_:
        update_conditions(ctx, vol_rep, vol_sync)

    update_status_state(ctx)
    ctx.status["observedGeneration"] = ctx.generation

    if deep_compare_dict(ctx.saved_status, ctx.status):
        ctx.logger.info("Nothing to update in VRG status")
        return not conds.required_conditions_ready(ctx.status), None

    ctx.status["lastUpdateTime"] = now()
    body = deep_copy(ctx.vrg.body)
    body["status"] = ctx.status
    try:
        updated = await store.update_vrg_status(body)
    except StoreError as e:
        ctx.logger.info(f"Failed to update VRG status ({ctx.vrg.key}): {e}")
        if sensor:
            sensor.on_status_write(ctx.vrg.name, ctx.vrg.namespace, False)
        return True, e

    ctx.vrg.refresh_metadata(updated)
    if sensor:
        sensor.on_status_write(ctx.vrg.name, ctx.vrg.namespace, True)
    ctx.logger.info(f"Updated VRG status (state {ctx.status.get('state')})")
    return not conds.required_conditions_ready(ctx.status), None
