from typing import List, Optional
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    CoreV1Api,
    CustomObjectsApi,
    StorageV1Api,
)
from ramen.resources.base import BaseStore, Body
from ramen.utils.errors import AlreadyExistsError, NotFoundError, convert_api_exception

VRG_PLURAL = "volumereplicationgroups"

VOLREP_GROUP = "replication.storage.openshift.io"
VOLREP_VERSION = "v1alpha1"
VOLREP_CLASS_PLURAL = "volumereplicationclasses"

MERGE_PATCH = "application/merge-patch+json"


class KubernetesStore(BaseStore):
    """Store backed by the Kubernetes API server.

    Reads never go through an informer cache, so every reconcile sees the
    latest generation of the objects it acts on.
    """

    def __init__(self, api_client: ApiClient, vrg_group: str, vrg_version: str):
        self.api_client = api_client
        self.vrg_group = vrg_group
        self.vrg_version = vrg_version
        self.core_v1_api = CoreV1Api(api_client)
        self.storage_v1_api = StorageV1Api(api_client)
        self.custom_objects_api = CustomObjectsApi(api_client)

    def _as_dict(self, obj) -> Body:
        return self.api_client.sanitize_for_serialization(obj)

    async def get_vrg(self, namespace: str, name: str) -> Body:
        return await self.get_custom_object(
            self.vrg_group, self.vrg_version, VRG_PLURAL, namespace, name
        )

    async def list_vrgs(self, namespace: str) -> List[Body]:
        try:
            res = await self.custom_objects_api.list_namespaced_custom_object(
                group=self.vrg_group,
                version=self.vrg_version,
                namespace=namespace,
                plural=VRG_PLURAL,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return res.get("items", [])

    async def update_vrg(self, body: Body) -> Body:
        meta = body["metadata"]
        try:
            return await self.custom_objects_api.replace_namespaced_custom_object(
                group=self.vrg_group,
                version=self.vrg_version,
                namespace=meta["namespace"],
                plural=VRG_PLURAL,
                name=meta["name"],
                body=body,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex

    async def update_vrg_status(self, body: Body) -> Body:
        meta = body["metadata"]
        try:
            return await self.custom_objects_api.replace_namespaced_custom_object_status(
                group=self.vrg_group,
                version=self.vrg_version,
                namespace=meta["namespace"],
                plural=VRG_PLURAL,
                name=meta["name"],
                body=body,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex

    async def list_pvcs(
        self, namespace: str, label_selector: Optional[str] = None
    ) -> List[Body]:
        try:
            res = await self.core_v1_api.list_namespaced_persistent_volume_claim(
                namespace=namespace, label_selector=label_selector or None
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return [self._as_dict(pvc) for pvc in res.items]

    async def patch_pvc(self, namespace: str, name: str, patch: Body) -> Body:
        try:
            res = await self.core_v1_api.patch_namespaced_persistent_volume_claim(
                name=name,
                namespace=namespace,
                body=patch,
                _content_type=MERGE_PATCH,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return self._as_dict(res)

    async def get_pv(self, name: str) -> Body:
        try:
            res = await self.core_v1_api.read_persistent_volume(name=name)
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return self._as_dict(res)

    async def create_pv(self, body: Body) -> Body:
        try:
            res = await self.core_v1_api.create_persistent_volume(body=body)
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return self._as_dict(res)

    async def get_storage_class(self, name: str) -> Body:
        try:
            res = await self.storage_v1_api.read_storage_class(name=name)
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return self._as_dict(res)

    async def list_replication_classes(
        self, label_selector: Optional[str] = None
    ) -> List[Body]:
        try:
            res = await self.custom_objects_api.list_cluster_custom_object(
                group=VOLREP_GROUP,
                version=VOLREP_VERSION,
                plural=VOLREP_CLASS_PLURAL,
                label_selector=label_selector or None,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex
        return res.get("items", [])

    async def get_custom_object(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> Body:
        try:
            return await self.custom_objects_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex

    async def apply_custom_object(
        self, group: str, version: str, plural: str, namespace: str, body: Body
    ) -> Body:
        try:
            return await self.custom_objects_api.create_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                body=body,
            )
        except ApiException as ex:
            error = convert_api_exception(ex)
            if not isinstance(error, AlreadyExistsError):
                raise error from ex
        try:
            return await self.custom_objects_api.patch_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=body["metadata"]["name"],
                body=body,
                _content_type=MERGE_PATCH,
            )
        except ApiException as ex:
            raise convert_api_exception(ex) from ex

    async def delete_custom_object(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> None:
        try:
            await self.custom_objects_api.delete_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            error = convert_api_exception(ex)
            if isinstance(error, NotFoundError):
                return
            raise error from ex
