import copy
from typing import Any, Dict, List, Optional
from ramen.common.models.labels import Finalizers
from ramen.types.models import PRIMARY, VolumeReplicationGroupSpec
from ramen.types.schemas import VolumeReplicationGroupSpecSchema
from ramen.utils.helpers import contains_string, namespaced_name, remove_string


class VolumeReplicationGroup:
    """VolumeReplicationGroup resource."""

    KIND = "VolumeReplicationGroup"

    body: Dict[str, Any]
    spec: VolumeReplicationGroupSpec
    spec_error: Optional[str] = None

    def __init__(self, body: Dict[str, Any], spec: VolumeReplicationGroupSpec):
        self.body = body
        self.spec = spec

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "VolumeReplicationGroup":
        """Build from a raw API object.

        Raises:
            marshmallow.ValidationError: if the spec is malformed.
        """
        body = copy.deepcopy(body)
        spec: VolumeReplicationGroupSpec = VolumeReplicationGroupSpecSchema().load(
            body.get("spec") or {}
        )
        return cls(body, spec)

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.body.setdefault("metadata", {})

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace")

    @property
    def key(self) -> str:
        return namespaced_name(self.namespace, self.name)

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get("uid")

    @property
    def generation(self) -> int:
        return self.metadata.get("generation", 0)

    @property
    def finalizers(self) -> List[str]:
        return list(self.metadata.get("finalizers") or [])

    @property
    def is_deleting(self) -> bool:
        return bool(self.metadata.get("deletionTimestamp"))

    @property
    def replication_state(self) -> Optional[str]:
        return self.spec.replication_state

    @property
    def is_primary(self) -> bool:
        return self.replication_state == PRIMARY

    @property
    def status(self) -> Dict[str, Any]:
        return self.body.get("status") or {}

    def has_finalizer(self, finalizer: str = Finalizers.VRG_PROTECTION) -> bool:
        return contains_string(self.metadata.get("finalizers"), finalizer)

    def with_finalizer(self, finalizer: str = Finalizers.VRG_PROTECTION) -> Dict[str, Any]:
        """Return a copy of the body carrying `finalizer`."""
        body = copy.deepcopy(self.body)
        finalizers = list(body["metadata"].get("finalizers") or [])
        if finalizer not in finalizers:
            finalizers.append(finalizer)
        body["metadata"]["finalizers"] = finalizers
        return body

    def without_finalizer(self, finalizer: str = Finalizers.VRG_PROTECTION) -> Dict[str, Any]:
        """Return a copy of the body without `finalizer`."""
        body = copy.deepcopy(self.body)
        body["metadata"]["finalizers"] = remove_string(
            body["metadata"].get("finalizers"), finalizer
        )
        return body

    def refresh_metadata(self, body: Dict[str, Any]) -> None:
        """Adopt metadata (resourceVersion, finalizers) returned by a write."""
        if body and body.get("metadata"):
            self.body["metadata"] = copy.deepcopy(body["metadata"])

    def owner_reference(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.body.get("apiVersion"),
            "kind": self.KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }
