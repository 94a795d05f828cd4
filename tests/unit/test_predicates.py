"""Unit tests for PVC event filtering and PVC to VolumeReplicationGroup mapping."""

import copy
from conftest import make_pvc, make_vrg_body
from ramen.common.models.labels import Finalizers
from ramen.reconciler.predicates import (
    create_event_decision,
    delete_event_decision,
    map_pvc_to_vrgs,
    skip_pvc,
    update_event_decision,
)
from ramen.utils.errors import StoreError


class TestSkipPvc:
    """Tests for skip_pvc()."""

    def test_bound(self):
        assert skip_pvc(make_pvc("a")) == (False, "")

    def test_pending(self):
        skip, reason = skip_pvc(make_pvc("a", phase="Pending"))
        assert skip
        assert "not bound" in reason

    def test_deleting_without_protection(self):
        pvc = make_pvc("a")
        pvc["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
        assert skip_pvc(pvc)[0]

    def test_deleting_with_protection(self):
        pvc = make_pvc("a", finalizers=[Finalizers.PVC_VR_PROTECTION])
        pvc["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
        assert not skip_pvc(pvc)[0]


class TestEventDecisions:
    """Tests for the create, delete and update decisions."""

    def test_create_always_passes(self):
        assert create_event_decision(make_pvc("a", phase="Pending"))

    def test_delete_never_passes(self):
        assert not delete_event_decision(make_pvc("a"))

    def test_spec_change(self):
        old = make_pvc("a", phase="Pending")
        new = copy.deepcopy(old)
        new["spec"]["resources"]["requests"]["storage"] = "2Gi"
        assert update_event_decision(old, new)

    def test_bound_transition(self):
        old = make_pvc("a", phase="Pending")
        new = make_pvc("a", phase="Bound")
        assert update_event_decision(old, new)

    def test_in_use_finalizer_removed(self):
        old = make_pvc("a", phase="Pending", finalizers=[Finalizers.PVC_IN_USE])
        new = make_pvc("a", phase="Pending")
        assert update_event_decision(old, new)

    def test_bound_pvc_status_change_passes(self):
        old = make_pvc("a")
        new = make_pvc("a")
        new["metadata"]["labels"]["extra"] = "x"
        assert update_event_decision(old, new)

    def test_irrelevant_change_on_unbound_pvc(self):
        old = make_pvc("a", phase="Pending")
        new = make_pvc("a", phase="Pending")
        new["metadata"]["annotations"]["note"] = "x"
        assert not update_event_decision(old, new)


class TestMapPvcToVrgs:
    """Tests for map_pvc_to_vrgs()."""

    async def test_matching_vrgs(self, store):
        store.add_vrg(make_vrg_body("vrg-1"))
        store.add_vrg(make_vrg_body("vrg-2", pvcSelector={"matchLabels": {"app": "other"}}))
        store.add_vrg(make_vrg_body("vrg-3", namespace="other"))
        assert await map_pvc_to_vrgs(store, make_pvc("a")) == ["ns/vrg-1"]

    async def test_malformed_selector_is_skipped(self, store):
        store.add_vrg(
            make_vrg_body(
                "bad",
                pvcSelector={"matchExpressions": [{"key": "app", "operator": "Bogus"}]},
            )
        )
        store.add_vrg(make_vrg_body("good"))
        assert await map_pvc_to_vrgs(store, make_pvc("a")) == ["ns/good"]

    async def test_list_failure(self, store):
        store.failures["list_vrgs"] = StoreError("unavailable")
        assert await map_pvc_to_vrgs(store, make_pvc("a")) == []
