"""Unit tests for splitting PVCs between replication backends."""

import random
import pytest
from conftest import PROVISIONER, make_pvc, make_replication_class, make_vrg_body
from ramen.reconciler.classification import classify_pvcs, separate_pvcs_using_vrg_status
from ramen.reconciler.context import ReconcileContext
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.utils.errors import ClassificationError, StoreError


def context(body, logger):
    return ReconcileContext.load(VolumeReplicationGroup.from_body(body), logger)


class TestSeparatePvcsUsingVrgStatus:
    """Tests for separate_pvcs_using_vrg_status()."""

    def test_replays_recorded_split(self):
        records = [
            {"name": "A", "protectedByVolSync": False},
            {"name": "B", "protectedByVolSync": True},
        ]
        result = separate_pvcs_using_vrg_status(
            [make_pvc("A"), make_pvc("B"), make_pvc("C")], records
        )
        assert result.vol_rep_names == ["A"]
        assert result.vol_sync_names == ["B"]

    def test_no_records(self):
        result = separate_pvcs_using_vrg_status([make_pvc("A")], None)
        assert result.vol_rep_pvcs == ()
        assert result.vol_sync_pvcs == ()


class TestClassifyPvcs:
    """Tests for classify_pvcs()."""

    async def test_without_replication_classes_all_go_to_volsync(self, store, test_logger):
        for name in ("A", "B", "C"):
            store.add_pvc(make_pvc(name))
        result = await classify_pvcs(store, context(make_vrg_body(), test_logger))
        assert result.vol_rep_pvcs == ()
        assert result.vol_sync_names == ["A", "B", "C"]

    async def test_split_by_provisioner(self, store, test_logger):
        store.replication_classes = [make_replication_class()]
        store.storage_classes = {
            "rbd": {"metadata": {"name": "rbd"}, "provisioner": PROVISIONER},
            "cephfs": {"metadata": {"name": "cephfs"}, "provisioner": "cephfs.csi.ceph.com"},
        }
        store.add_pvc(make_pvc("B", storage_class="cephfs"))
        store.add_pvc(make_pvc("A", storage_class="rbd"))
        store.add_pvc(make_pvc("C", storage_class="rbd"))
        result = await classify_pvcs(store, context(make_vrg_body(), test_logger))
        assert result.vol_rep_names == ["A", "C"]
        assert result.vol_sync_names == ["B"]
        assert [rc["metadata"]["name"] for rc in result.replication_classes] == ["rc"]
        assert store.calls.count("get_storage_class") == 2

    async def test_listing_order_does_not_change_the_split(self, store, test_logger):
        store.replication_classes = [make_replication_class()]
        store.storage_classes = {
            "rbd": {"metadata": {"name": "rbd"}, "provisioner": PROVISIONER},
            "cephfs": {"metadata": {"name": "cephfs"}, "provisioner": "cephfs.csi.ceph.com"},
        }
        for i, name in enumerate("ABCDEFGH"):
            store.add_pvc(make_pvc(name, storage_class="rbd" if i % 2 else "cephfs"))
        ctx = context(make_vrg_body(), test_logger)
        first = await classify_pvcs(store, ctx)

        entries = list(store.pvcs.items())
        random.Random(7).shuffle(entries)
        store.pvcs = dict(entries)
        second = await classify_pvcs(store, ctx)

        assert first.vol_rep_names == second.vol_rep_names == ["B", "D", "F", "H"]
        assert first.vol_sync_names == second.vol_sync_names == ["A", "C", "E", "G"]

    async def test_storage_class_failure_fails_classification(self, store, test_logger):
        store.replication_classes = [make_replication_class()]
        store.add_pvc(make_pvc("A", storage_class="missing"))
        with pytest.raises(ClassificationError):
            await classify_pvcs(store, context(make_vrg_body(), test_logger))

    async def test_vol_sync_disabled(self, store, test_logger):
        store.replication_classes = [make_replication_class()]
        store.add_pvc(make_pvc("A", storage_class="anything"))
        body = make_vrg_body(volSync={"disabled": True})
        result = await classify_pvcs(store, context(body, test_logger))
        assert result.vol_rep_names == ["A"]
        assert len(result.replication_classes) == 1

    async def test_deletion_replays_status(self, store, test_logger):
        for name in ("A", "B", "C"):
            store.add_pvc(make_pvc(name))
        status = {
            "protectedPVCs": [
                {"name": "A", "protectedByVolSync": False},
                {"name": "B", "protectedByVolSync": True},
            ]
        }
        body = make_vrg_body(deleting=True, status=status)
        result = await classify_pvcs(store, context(body, test_logger))
        assert result.vol_rep_names == ["A"]
        assert result.vol_sync_names == ["B"]

    async def test_list_failure(self, store, test_logger):
        store.failures["list_pvcs"] = StoreError("unavailable")
        with pytest.raises(ClassificationError):
            await classify_pvcs(store, context(make_vrg_body(), test_logger))

    async def test_selector_is_sent_to_the_store(self, store, test_logger):
        await classify_pvcs(store, context(make_vrg_body(), test_logger))
        assert store.pvc_selectors == ["app in (busybox)"]
