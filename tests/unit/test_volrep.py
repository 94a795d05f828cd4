"""Unit tests for the VolumeReplication backend."""

import pytest
from unittest.mock import AsyncMock, Mock
from conftest import PROVISIONER, completed_status, make_pvc, make_replication_class, make_vrg_body
from ramen.backends.volrep import (
    VOLREP_PLURAL,
    VolRepBackend,
    volume_replication_completed,
)
from ramen.common.models.labels import Annotations, Finalizers, Labels
from ramen.reconciler import conditions as conds
from ramen.reconciler.context import ReconcileContext, VolumeClassification
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.utils.errors import ClusterDataError

STORAGE_CLASS = {"metadata": {"name": "rbd"}, "provisioner": PROVISIONER}


@pytest.fixture
def cluster_data():
    cluster_data = Mock()
    cluster_data.upload_pv = AsyncMock()
    cluster_data.restore_from_backup = AsyncMock(return_value=0)
    return cluster_data


@pytest.fixture
def backend(store, events, cluster_data):
    store.storage_classes["rbd"] = STORAGE_CLASS
    store.pvs["pv-a"] = {"metadata": {"name": "pv-a"}, "spec": {}}
    return VolRepBackend(store, events, cluster_data)


def context(logger, pvcs=(), classes=(make_replication_class(),), **kwargs):
    vrg = VolumeReplicationGroup.from_body(make_vrg_body(**kwargs))
    return ReconcileContext.load(vrg, logger).with_classification(
        VolumeClassification(vol_rep_pvcs=tuple(pvcs), replication_classes=tuple(classes))
    )


def pvc_condition(ctx, name, type_):
    for record in ctx.status["protectedPVCs"]:
        if record["name"] == name:
            return conds.Conditions(record["conditions"]).find(type_)
    return None


class TestVolumeReplicationCompleted:
    """Tests for volume_replication_completed()."""

    def test_reported(self):
        assert volume_replication_completed({"status": completed_status()})["status"] == "True"

    def test_stale_generation(self):
        vr = {"metadata": {"generation": 2}, "status": dict(completed_status(), observedGeneration=1)}
        assert volume_replication_completed(vr) is None

    def test_not_reported(self):
        assert volume_replication_completed({}) is None


class TestSelectReplicationClass:
    """Tests for VolRepBackend.select_replication_class()."""

    def test_matches_provisioner_and_interval(self, backend, test_logger):
        classes = (
            make_replication_class("other", provisioner="other"),
            make_replication_class("slow", interval="1h"),
            make_replication_class("fast", interval="5m"),
        )
        ctx = context(test_logger, classes=classes)
        assert backend.select_replication_class(ctx, STORAGE_CLASS) == "fast"

    def test_no_match(self, backend, test_logger):
        ctx = context(test_logger, classes=(make_replication_class(provisioner="other"),))
        assert backend.select_replication_class(ctx, STORAGE_CLASS) is None


class TestReconcileAsPrimary:
    """Tests for VolRepBackend.reconcile_as_primary()."""

    async def test_creates_volume_replication(self, backend, store, cluster_data, test_logger):
        pvc = store.add_pvc(make_pvc("a"))
        ctx = context(test_logger, [pvc])
        assert await backend.reconcile_as_primary(ctx, [pvc])

        vr = store.custom_objects[(VOLREP_PLURAL, "ns", "a")]
        assert vr["spec"]["replicationState"] == "primary"
        assert vr["spec"]["volumeReplicationClass"] == "rc"
        assert vr["spec"]["dataSource"]["name"] == "a"
        assert vr["metadata"]["labels"][Labels.KUBERNETES_PART_OF_LABEL] == "vrg"
        assert vr["metadata"]["ownerReferences"][0]["name"] == "vrg"

        stored = store.stored_pvc("ns", "a")
        assert Finalizers.PVC_VR_PROTECTION in stored["metadata"]["finalizers"]
        assert stored["metadata"]["annotations"][Annotations.PVC_VR_PROTECTED_KEY] == Annotations.PVC_VR_PROTECTED_VALUE
        cluster_data.upload_pv.assert_awaited_once()
        assert pvc_condition(ctx, "a", conds.DATA_READY)["status"] == conds.UNKNOWN
        assert pvc_condition(ctx, "a", conds.CLUSTER_DATA_PROTECTED)["status"] == conds.TRUE

    async def test_completed(self, backend, store, cluster_data, test_logger):
        pvc = store.add_pvc(
            make_pvc(
                "a",
                annotations={Annotations.PVC_VR_PROTECTED_KEY: Annotations.PVC_VR_PROTECTED_VALUE},
            )
        )
        store.custom_objects[(VOLREP_PLURAL, "ns", "a")] = {"status": completed_status()}
        ctx = context(test_logger, [pvc])
        assert not await backend.reconcile_as_primary(ctx, [pvc])
        cluster_data.upload_pv.assert_not_awaited()
        assert pvc_condition(ctx, "a", conds.DATA_READY)["reason"] == conds.REASON_READY
        assert pvc_condition(ctx, "a", conds.DATA_PROTECTED)["status"] == conds.TRUE
        record = ctx.status["protectedPVCs"][0]
        assert record["protectedByVolSync"] is False
        assert record["storageClassName"] == "rbd"

    async def test_failed_replication(self, backend, store, test_logger):
        pvc = store.add_pvc(make_pvc("a"))
        store.custom_objects[(VOLREP_PLURAL, "ns", "a")] = {"status": completed_status("False")}
        ctx = context(test_logger, [pvc])
        assert await backend.reconcile_as_primary(ctx, [pvc])
        assert pvc_condition(ctx, "a", conds.DATA_READY)["status"] == conds.FALSE

    async def test_unbound_pvc_is_skipped(self, backend, store, test_logger):
        pvc = store.add_pvc(make_pvc("a", phase="Pending"))
        ctx = context(test_logger, [pvc])
        assert await backend.reconcile_as_primary(ctx, [pvc])
        assert "apply_custom_object" not in store.calls
        assert pvc_condition(ctx, "a", conds.DATA_READY)["reason"] == conds.REASON_PROGRESSING

    async def test_upload_failure(self, backend, store, cluster_data, post_event, test_logger):
        cluster_data.upload_pv.side_effect = ClusterDataError("s3 down")
        pvc = store.add_pvc(make_pvc("a"))
        ctx = context(test_logger, [pvc])
        assert await backend.reconcile_as_primary(ctx, [pvc])
        assert "apply_custom_object" not in store.calls
        cdp = pvc_condition(ctx, "a", conds.CLUSTER_DATA_PROTECTED)
        assert cdp["status"] == conds.FALSE
        assert cdp["reason"] == conds.REASON_UPLOAD_ERROR
        assert post_event.call_args.kwargs["reason"] == "PVUploadFailed"

    async def test_no_matching_class(self, backend, store, test_logger):
        pvc = store.add_pvc(
            make_pvc(
                "a",
                annotations={Annotations.PVC_VR_PROTECTED_KEY: Annotations.PVC_VR_PROTECTED_VALUE},
            )
        )
        ctx = context(test_logger, [pvc], classes=())
        assert await backend.reconcile_as_primary(ctx, [pvc])
        assert pvc_condition(ctx, "a", conds.DATA_READY)["status"] == conds.FALSE


class TestReconcileAsSecondary:
    """Tests for VolRepBackend.reconcile_as_secondary()."""

    async def test_completed(self, backend, store, cluster_data, test_logger):
        pvc = store.add_pvc(make_pvc("a"))
        store.custom_objects[(VOLREP_PLURAL, "ns", "a")] = {"status": completed_status()}
        ctx = context(test_logger, [pvc], state="secondary")
        assert not await backend.reconcile_as_secondary(ctx, [pvc])
        cluster_data.upload_pv.assert_not_awaited()
        assert store.custom_objects[(VOLREP_PLURAL, "ns", "a")]["spec"]["replicationState"] == "secondary"
        for type_ in conds.AGGREGATED_TYPES:
            assert pvc_condition(ctx, "a", type_)["status"] == conds.TRUE


class TestProtectedPvcRecord:
    """Tests for VolRepBackend.ensure_protected_pvc()."""

    STALE = {
        "name": "a",
        "protectedByVolSync": True,
        "conditions": [conds.condition(conds.DATA_PROTECTED, conds.UNKNOWN, "Progressing", "x", 1)],
    }

    def test_retags_record_from_other_backend(self, backend, test_logger):
        ctx = context(test_logger, status={"protectedPVCs": [dict(self.STALE)]})
        record = backend.ensure_protected_pvc(ctx, make_pvc("a"))
        assert record["protectedByVolSync"] is False
        assert record["conditions"] == []

    def test_keeps_record_while_deleting(self, backend, test_logger):
        ctx = context(test_logger, deleting=True, status={"protectedPVCs": [dict(self.STALE)]})
        record = backend.ensure_protected_pvc(ctx, make_pvc("a"))
        assert record["protectedByVolSync"] is True
        assert len(record["conditions"]) == 1


class TestReconcileForDeletion:
    """Tests for VolRepBackend.reconcile_for_deletion()."""

    async def test_releases_pvc(self, backend, store, test_logger):
        pvc = store.add_pvc(make_pvc("a", finalizers=[Finalizers.PVC_VR_PROTECTION]))
        store.custom_objects[(VOLREP_PLURAL, "ns", "a")] = {"metadata": {"name": "a"}}
        ctx = context(test_logger, [pvc])
        backend.ensure_protected_pvc(ctx, pvc)
        assert not await backend.reconcile_for_deletion(ctx, [pvc])
        assert (VOLREP_PLURAL, "ns", "a") not in store.custom_objects
        assert store.stored_pvc("ns", "a")["metadata"]["finalizers"] == []
        assert ctx.status["protectedPVCs"] == []


class TestRestorePvs:
    """Tests for VolRepBackend.restore_pvs()."""

    async def test_failure_is_reported(self, backend, cluster_data, post_event, test_logger):
        cluster_data.restore_from_backup.side_effect = ClusterDataError("no profile")
        with pytest.raises(ClusterDataError):
            await backend.restore_pvs(context(test_logger))
        assert post_event.call_args.kwargs["reason"] == "PVRestoreFailed"
