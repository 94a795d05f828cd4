"""Shared fixtures for the operator unit tests."""

import copy
import logging
import pytest
from typing import Any, Dict, List, Optional
from unittest.mock import Mock
from ramen.resources.base import BaseStore
from ramen.utils.errors import AlreadyExistsError, NotFoundError
from ramen.utils.events import EventReporter

Body = Dict[str, Any]

PROVISIONER = "rbd.csi.ceph.com"


class FakeStore(BaseStore):
    """In-memory store behaving like the API server for the objects the operator touches.

    PVC listing ignores the label selector (it is recorded in `pvc_selectors`);
    tests only put the PVCs a VolumeReplicationGroup selects into the store.
    Set `failures[<method name>]` to an exception to make that call raise it.
    """

    def __init__(self):
        self.vrgs: Dict[str, Body] = {}
        self.pvcs: Dict[str, Body] = {}
        self.pvs: Dict[str, Body] = {}
        self.storage_classes: Dict[str, Body] = {}
        self.replication_classes: List[Body] = []
        self.custom_objects: Dict[tuple, Body] = {}
        self.status_writes: List[Body] = []
        self.vrg_updates: List[Body] = []
        self.pvc_patches: List[tuple] = []
        self.pvc_selectors: List[Optional[str]] = []
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self._version = 0

    def _call(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    # Fixture helpers

    def add_vrg(self, body: Body) -> Body:
        body = copy.deepcopy(body)
        body["metadata"].setdefault("resourceVersion", self._next_version())
        self.vrgs[f"{body['metadata']['namespace']}/{body['metadata']['name']}"] = body
        return body

    def add_pvc(self, body: Body) -> Body:
        self.pvcs[f"{body['metadata']['namespace']}/{body['metadata']['name']}"] = copy.deepcopy(body)
        return body

    def stored_vrg(self, namespace: str = "ns", name: str = "vrg") -> Optional[Body]:
        return self.vrgs.get(f"{namespace}/{name}")

    def stored_pvc(self, namespace: str, name: str) -> Body:
        return self.pvcs[f"{namespace}/{name}"]

    # VolumeReplicationGroup

    async def get_vrg(self, namespace, name):
        self._call("get_vrg")
        try:
            return copy.deepcopy(self.vrgs[f"{namespace}/{name}"])
        except KeyError:
            raise NotFoundError(f"{namespace}/{name}") from None

    async def list_vrgs(self, namespace):
        self._call("list_vrgs")
        return [
            copy.deepcopy(v)
            for v in self.vrgs.values()
            if v["metadata"].get("namespace") == namespace
        ]

    async def update_vrg(self, body):
        self._call("update_vrg")
        key = f"{body['metadata']['namespace']}/{body['metadata']['name']}"
        if key not in self.vrgs:
            raise NotFoundError(key)
        self.vrg_updates.append(copy.deepcopy(body))
        stored = self.vrgs[key]
        stored["metadata"] = copy.deepcopy(body["metadata"])
        stored["spec"] = copy.deepcopy(body.get("spec"))
        stored["metadata"]["resourceVersion"] = self._next_version()
        if stored["metadata"].get("deletionTimestamp") and not stored["metadata"].get("finalizers"):
            del self.vrgs[key]
        return copy.deepcopy(stored)

    async def update_vrg_status(self, body):
        self._call("update_vrg_status")
        key = f"{body['metadata']['namespace']}/{body['metadata']['name']}"
        if key not in self.vrgs:
            raise NotFoundError(key)
        self.status_writes.append(copy.deepcopy(body["status"]))
        stored = self.vrgs[key]
        stored["status"] = copy.deepcopy(body["status"])
        stored["metadata"]["resourceVersion"] = self._next_version()
        return copy.deepcopy(stored)

    # Core and storage objects

    async def list_pvcs(self, namespace, label_selector=None):
        self._call("list_pvcs")
        self.pvc_selectors.append(label_selector)
        return [
            copy.deepcopy(p)
            for p in self.pvcs.values()
            if p["metadata"].get("namespace") == namespace
        ]

    async def patch_pvc(self, namespace, name, patch):
        self._call("patch_pvc")
        key = f"{namespace}/{name}"
        if key not in self.pvcs:
            raise NotFoundError(key)
        self.pvc_patches.append((name, copy.deepcopy(patch)))
        meta = self.pvcs[key]["metadata"]
        for k, v in patch.get("metadata", {}).items():
            if k == "annotations":
                meta.setdefault("annotations", {}).update(v)
            elif k != "resourceVersion":
                meta[k] = v
        return copy.deepcopy(self.pvcs[key])

    async def get_pv(self, name):
        self._call("get_pv")
        try:
            return copy.deepcopy(self.pvs[name])
        except KeyError:
            raise NotFoundError(name) from None

    async def create_pv(self, body):
        self._call("create_pv")
        name = body["metadata"]["name"]
        if name in self.pvs:
            raise AlreadyExistsError(name)
        self.pvs[name] = copy.deepcopy(body)
        return copy.deepcopy(body)

    async def get_storage_class(self, name):
        self._call("get_storage_class")
        try:
            return copy.deepcopy(self.storage_classes[name])
        except KeyError:
            raise NotFoundError(name) from None

    async def list_replication_classes(self, label_selector=None):
        self._call("list_replication_classes")
        return copy.deepcopy(self.replication_classes)

    # Custom objects

    async def get_custom_object(self, group, version, plural, namespace, name):
        self._call("get_custom_object")
        try:
            return copy.deepcopy(self.custom_objects[(plural, namespace, name)])
        except KeyError:
            raise NotFoundError(f"{plural} {namespace}/{name}") from None

    async def apply_custom_object(self, group, version, plural, namespace, body):
        self._call("apply_custom_object")
        key = (plural, namespace, body["metadata"]["name"])
        existing = self.custom_objects.get(key, {})
        merged = copy.deepcopy(body)
        if existing.get("status"):
            merged["status"] = copy.deepcopy(existing["status"])
        self.custom_objects[key] = merged
        return copy.deepcopy(merged)

    async def delete_custom_object(self, group, version, plural, namespace, name):
        self._call("delete_custom_object")
        self.custom_objects.pop((plural, namespace, name), None)


def make_vrg_body(
    name: str = "vrg",
    namespace: str = "ns",
    state: Optional[str] = "primary",
    generation: int = 1,
    finalizers: Optional[List[str]] = None,
    deleting: bool = False,
    status: Optional[Body] = None,
    s3_profiles: Optional[List[str]] = None,
    **spec_overrides,
) -> Body:
    spec = {
        "replicationState": state,
        "pvcSelector": {"matchLabels": {"app": "busybox"}},
        "async": {
            "mode": "Enabled",
            "schedulingInterval": "5m",
            "replicationClassSelector": {},
        },
        "s3Profiles": s3_profiles or [],
    }
    spec.update(spec_overrides)
    body = {
        "apiVersion": "ramendr.openshift.io/v1alpha1",
        "kind": "VolumeReplicationGroup",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "generation": generation,
            "finalizers": list(finalizers or []),
        },
        "spec": spec,
    }
    if deleting:
        body["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
    if status is not None:
        body["status"] = status
    return body


def make_pvc(
    name: str,
    namespace: str = "ns",
    storage_class: str = "rbd",
    phase: str = "Bound",
    labels: Optional[Dict[str, str]] = None,
    finalizers: Optional[List[str]] = None,
    annotations: Optional[Dict[str, str]] = None,
) -> Body:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "resourceVersion": "1",
            "labels": labels if labels is not None else {"app": "busybox"},
            "finalizers": list(finalizers or []),
            "annotations": dict(annotations or {}),
        },
        "spec": {
            "storageClassName": storage_class,
            "volumeName": f"pv-{name}",
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": "1Gi"}},
        },
        "status": {"phase": phase},
    }


def make_replication_class(name: str = "rc", provisioner: str = PROVISIONER, interval: str = "5m") -> Body:
    return {
        "metadata": {"name": name},
        "spec": {"provisioner": provisioner, "parameters": {"schedulingInterval": interval}},
    }


def completed_status(status: str = "True") -> Body:
    return {"conditions": [{"type": "Completed", "status": status, "message": "done"}]}


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def test_logger():
    return logging.getLogger("ramen.tests")


@pytest.fixture
def post_event():
    return Mock()


@pytest.fixture
def events(post_event):
    return EventReporter(300.0, post=post_event)
