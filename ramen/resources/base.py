from typing import Any, Dict, List, Optional

Body = Dict[str, Any]


class BaseStore:
    """Authoritative store of cluster objects.

    Objects are exchanged as plain dicts in their API (camelCase) form. Every
    call may raise a `ramen.utils.errors.StoreError`; a missing object raises
    `ramen.utils.errors.NotFoundError`.
    """

    # VolumeReplicationGroup

    async def get_vrg(self, namespace: str, name: str) -> Body:
        """Read a VolumeReplicationGroup straight from the API server."""
        raise NotImplementedError()

    async def list_vrgs(self, namespace: str) -> List[Body]:
        raise NotImplementedError()

    async def update_vrg(self, body: Body) -> Body:
        """Replace metadata and spec; `metadata.resourceVersion` guards the write."""
        raise NotImplementedError()

    async def update_vrg_status(self, body: Body) -> Body:
        """Replace the status subresource; `metadata.resourceVersion` guards the write."""
        raise NotImplementedError()

    # Core and storage objects

    async def list_pvcs(
        self, namespace: str, label_selector: Optional[str] = None
    ) -> List[Body]:
        raise NotImplementedError()

    async def patch_pvc(self, namespace: str, name: str, patch: Body) -> Body:
        raise NotImplementedError()

    async def get_pv(self, name: str) -> Body:
        raise NotImplementedError()

    async def create_pv(self, body: Body) -> Body:
        raise NotImplementedError()

    async def get_storage_class(self, name: str) -> Body:
        raise NotImplementedError()

    async def list_replication_classes(
        self, label_selector: Optional[str] = None
    ) -> List[Body]:
        raise NotImplementedError()

    # Namespaced custom objects managed by the replication backends

    async def get_custom_object(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> Body:
        raise NotImplementedError()

    async def apply_custom_object(
        self, group: str, version: str, plural: str, namespace: str, body: Body
    ) -> Body:
        """Create the object, or patch it if it already exists."""
        raise NotImplementedError()

    async def delete_custom_object(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> None:
        """Delete the object; a missing object is not an error."""
        raise NotImplementedError()
