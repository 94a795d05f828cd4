"""Unit tests for condition roll-up and the status write."""

from unittest.mock import Mock
from conftest import make_pvc, make_vrg_body
from ramen.backends import VolRepBackend, VolSyncBackend
from ramen.reconciler import conditions as conds
from ramen.reconciler.context import ReconcileContext, VolumeClassification
from ramen.reconciler.status import (
    STATE_PRIMARY,
    STATE_SECONDARY,
    STATE_UNKNOWN,
    update_conditions,
    update_status_state,
    update_vrg_status,
)
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.utils.errors import ConflictError


def context(store, logger, **kwargs):
    body = store.add_vrg(make_vrg_body(**kwargs))
    return ReconcileContext.load(VolumeReplicationGroup.from_body(body), logger)


def mark(backend, ctx, pvc, status, types=conds.AGGREGATED_TYPES):
    for type_ in types:
        backend.set_pvc_condition(ctx, pvc, type_, status, "Test", "test")


class TestUpdateConditions:
    """Tests for update_conditions()."""

    def test_no_pvcs_sets_unused(self, store, test_logger):
        ctx = context(store, test_logger)
        update_conditions(ctx, VolRepBackend(store), VolSyncBackend(store))
        assert conds.required_conditions_ready(ctx.status)
        assert conds.find_condition(ctx.status, conds.DATA_PROTECTED)["reason"] == conds.REASON_UNUSED

    def test_volrep_verdict_overrides_volsync(self, store, test_logger):
        vol_rep, vol_sync = VolRepBackend(store), VolSyncBackend(store)
        a, b = make_pvc("a"), make_pvc("b")
        ctx = context(store, test_logger).with_classification(
            VolumeClassification(vol_rep_pvcs=(a,), vol_sync_pvcs=(b,))
        )
        mark(vol_rep, ctx, a, conds.TRUE)
        mark(vol_sync, ctx, b, conds.FALSE)
        update_conditions(ctx, vol_rep, vol_sync)
        assert conds.find_condition(ctx.status, conds.DATA_READY)["status"] == conds.TRUE

    def test_volsync_verdict_without_volrep_pvcs(self, store, test_logger):
        vol_rep, vol_sync = VolRepBackend(store), VolSyncBackend(store)
        b = make_pvc("b")
        ctx = context(store, test_logger).with_classification(
            VolumeClassification(vol_sync_pvcs=(b,))
        )
        mark(vol_sync, ctx, b, conds.FALSE)
        update_conditions(ctx, vol_rep, vol_sync)
        assert conds.find_condition(ctx.status, conds.DATA_READY)["status"] == conds.FALSE

    def test_cluster_data_ready_is_untouched(self, store, test_logger):
        vol_rep = VolRepBackend(store)
        a = make_pvc("a")
        ctx = context(store, test_logger).with_classification(
            VolumeClassification(vol_rep_pvcs=(a,))
        )
        conds.set_cluster_data_ready_condition(ctx.status, 1, "restored")
        mark(vol_rep, ctx, a, conds.FALSE)
        update_conditions(ctx, vol_rep, VolSyncBackend(store))
        assert conds.find_condition(ctx.status, conds.CLUSTER_DATA_READY)["status"] == conds.TRUE


class TestUpdateStatusState:
    """Tests for update_status_state()."""

    def test_follows_spec_once_data_ready(self, store, test_logger):
        ctx = context(store, test_logger, state="secondary")
        conds.set_condition(
            ctx.status, conds.condition(conds.DATA_READY, conds.TRUE, conds.REASON_REPLICATING, "", 1)
        )
        update_status_state(ctx)
        assert ctx.status["state"] == STATE_SECONDARY

    def test_keeps_previous_state_while_progressing(self, store, test_logger):
        ctx = context(store, test_logger, state="secondary", status={"state": STATE_PRIMARY})
        conds.set_condition(
            ctx.status, conds.condition(conds.DATA_READY, conds.UNKNOWN, conds.REASON_PROGRESSING, "", 1)
        )
        update_status_state(ctx)
        assert ctx.status["state"] == STATE_PRIMARY

    def test_error_makes_state_unknown(self, store, test_logger):
        ctx = context(store, test_logger, status={"state": STATE_PRIMARY})
        conds.set_data_error_condition(ctx.status, 1, "broken")
        update_status_state(ctx)
        assert ctx.status["state"] == STATE_UNKNOWN


class TestUpdateVrgStatus:
    """Tests for update_vrg_status()."""

    async def test_write_then_nothing_to_update(self, store, test_logger):
        sensor = Mock()
        ctx = context(store, test_logger)
        ctx.status["protectedPVCs"] = []
        conds.set_unused_conditions(ctx.status, ctx.generation)
        requeue, err = await update_vrg_status(store, ctx, sensor=sensor)
        assert (requeue, err) == (False, None)
        assert len(store.status_writes) == 1
        assert store.status_writes[0]["observedGeneration"] == 1
        assert "lastUpdateTime" in store.status_writes[0]
        sensor.on_status_write.assert_called_once_with("vrg", "ns", True)

        again = ReconcileContext.load(
            VolumeReplicationGroup.from_body(store.stored_vrg()), test_logger
        )
        conds.set_unused_conditions(again.status, again.generation)
        requeue, err = await update_vrg_status(store, again)
        assert (requeue, err) == (False, None)
        assert len(store.status_writes) == 1

    async def test_requeue_until_required_conditions_true(self, store, test_logger):
        ctx = context(store, test_logger)
        conds.set_initial_conditions(ctx.status, ctx.generation, "Initializing")
        requeue, err = await update_vrg_status(store, ctx)
        assert requeue
        assert err is None

    async def test_write_failure(self, store, test_logger):
        sensor = Mock()
        store.failures["update_vrg_status"] = ConflictError("stale")
        ctx = context(store, test_logger)
        conds.set_unused_conditions(ctx.status, ctx.generation)
        requeue, err = await update_vrg_status(store, ctx, sensor=sensor)
        assert requeue
        assert isinstance(err, ConflictError)
        sensor.on_status_write.assert_called_once_with("vrg", "ns", False)
