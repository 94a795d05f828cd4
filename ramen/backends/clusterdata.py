"""PV cluster data kept in S3 compatible object stores.

The PersistentVolume object behind each VolumeReplication protected PVC is
uploaded as JSON, so a cluster taking over as primary can recreate the PVs
before the PVCs bind. Every S3 profile named by the VolumeReplicationGroup
receives a copy.
"""

import json
import asyncio
import logging
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from typing import Any, Callable, Dict, List
from ramen.common.models.labels import Annotations
from ramen.resources.base import BaseStore
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.utils.errors import ClusterDataError, NotFoundError, StoreError
from ramen.utils.s3 import build_pv_object_key, build_vrg_prefix, pv_name_from_key

logger = logging.getLogger(__name__)

Body = Dict[str, Any]

_S3_ERRORS = (BotoCoreError, ClientError)

#: Largest batch accepted by DeleteObjects
DELETE_BATCH_SIZE = 1000

_VOLATILE_METADATA = (
    "resourceVersion",
    "uid",
    "creationTimestamp",
    "managedFields",
    "selfLink",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
)


def make_s3_client(profile: Dict[str, Any]):
    kwargs = {}
    if profile.get("endpoint"):
        kwargs["endpoint_url"] = profile["endpoint"]
    if profile.get("region"):
        kwargs["region_name"] = profile["region"]
    if profile.get("accessKeyID") and profile.get("secretAccessKey"):
        kwargs["aws_access_key_id"] = profile["accessKeyID"]
        kwargs["aws_secret_access_key"] = profile["secretAccessKey"]
    return boto3.client("s3", **kwargs)


def prepare_pv_for_backup(pv: Body) -> Body:
    """Strip the cluster specific parts of a PV so it can be created elsewhere."""
    metadata = {
        k: v for k, v in (pv.get("metadata") or {}).items() if k not in _VOLATILE_METADATA
    }
    spec = dict(pv.get("spec") or {})
    if spec.get("claimRef"):
        spec["claimRef"] = {
            k: v
            for k, v in spec["claimRef"].items()
            if k not in ("resourceVersion", "uid")
        }
    return {
        "apiVersion": pv.get("apiVersion", "v1"),
        "kind": pv.get("kind", "PersistentVolume"),
        "metadata": metadata,
        "spec": spec,
    }


class ClusterDataStore:
    """Upload, restore and delete PV cluster data."""

    def __init__(
        self,
        store: BaseStore,
        profiles: List[Dict[str, Any]],
        client_factory: Callable[[Dict[str, Any]], Any] = make_s3_client,
    ):
        self.store = store
        self.profiles = {p["name"]: p for p in profiles}
        self._client_factory = client_factory
        self._clients: Dict[str, Any] = {}

    def _profile(self, name: str) -> Dict[str, Any]:
        try:
            return self.profiles[name]
        except KeyError:
            raise ClusterDataError(f"S3 profile `{name}` is not configured") from None

    def _client(self, name: str):
        if name not in self._clients:
            self._clients[name] = self._client_factory(self._profile(name))
        return self._clients[name]

    def _prefix(self, vrg: VolumeReplicationGroup, profile: Dict[str, Any]) -> str:
        return build_vrg_prefix(vrg.namespace, vrg.name, profile.get("prefix", ""))

    async def _list_keys(self, name: str, prefix: str) -> List[str]:
        client = self._client(name)
        bucket = self._profile(name)["bucket"]

        def _list():
            keys = []
            paginator = client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        return await asyncio.to_thread(_list)

    async def upload_pv(self, vrg: VolumeReplicationGroup, pv: Body) -> None:
        """Upload one PV to every S3 profile of the VolumeReplicationGroup.

        Raises:
            ClusterDataError: if any upload failed.
        """
        body = json.dumps(prepare_pv_for_backup(pv), sort_keys=True).encode()
        pv_name = pv["metadata"]["name"]
        for name in vrg.spec.s3_profiles:
            profile = self._profile(name)
            key = build_pv_object_key(
                vrg.namespace, vrg.name, pv_name, profile.get("prefix", "")
            )
            client = self._client(name)
            try:
                await asyncio.to_thread(
                    client.put_object,
                    Bucket=profile["bucket"],
                    Key=key,
                    Body=body,
                    ContentType="application/json",
                )
            except _S3_ERRORS as e:
                raise ClusterDataError(
                    f"failed to upload PV {pv_name} to S3 profile {name}: {e}"
                ) from e
            logger.info(f"Uploaded PV {pv_name} to {profile['bucket']}/{key}")

    async def restore_from_backup(self, vrg: VolumeReplicationGroup) -> int:
        """Create the PVs kept for the VolumeReplicationGroup that the cluster lacks.

        Profiles are tried in order; the first one that restores completely wins.

        Returns:
            Number of PVs created.

        Raises:
            ClusterDataError: if no profile could be restored from.
        """
        if not vrg.spec.s3_profiles:
            logger.info(f"No S3 profiles for {vrg.key}, nothing to restore")
            return 0
        errors = []
        for name in vrg.spec.s3_profiles:
            try:
                return await self._restore_from_profile(vrg, name)
            except ClusterDataError as e:
                logger.warning(f"Failed to restore PVs of {vrg.key} from {name}: {e}")
                errors.append(str(e))
        raise ClusterDataError(
            f"failed to restore PVs from any S3 profile ({'; '.join(errors)})"
        )

    async def _restore_from_profile(self, vrg: VolumeReplicationGroup, name: str) -> int:
        profile = self._profile(name)
        client = self._client(name)
        try:
            keys = await self._list_keys(name, self._prefix(vrg, profile))
        except _S3_ERRORS as e:
            raise ClusterDataError(f"failed to list PVs in S3 profile {name}: {e}") from e

        restored = 0
        for key in sorted(keys):
            try:
                pv_name = pv_name_from_key(key)
            except ValueError:
                continue
            try:
                await self.store.get_pv(pv_name)
                continue
            except NotFoundError:
                pass
            except StoreError as e:
                raise ClusterDataError(f"failed to look up PV {pv_name}: {e}") from e

            try:
                obj = await asyncio.to_thread(
                    client.get_object, Bucket=profile["bucket"], Key=key
                )
                pv = json.loads(await asyncio.to_thread(obj["Body"].read))
            except _S3_ERRORS as e:
                raise ClusterDataError(f"failed to download {key}: {e}") from e
            except ValueError as e:
                raise ClusterDataError(f"malformed PV object {key}: {e}") from e

            annotations = pv["metadata"].setdefault("annotations", {})
            annotations[Annotations.PV_RESTORE_KEY] = Annotations.PV_RESTORE_VALUE
            try:
                await self.store.create_pv(pv)
            except StoreError as e:
                raise ClusterDataError(f"failed to create PV {pv_name}: {e}") from e
            restored += 1
            logger.info(f"Restored PV {pv_name} from {name}")
        return restored

    async def delete_backup(self, vrg: VolumeReplicationGroup) -> None:
        """Delete every object kept for the VolumeReplicationGroup.

        Raises:
            ClusterDataError: if listing or deleting failed for any profile.
        """
        for name in vrg.spec.s3_profiles:
            profile = self._profile(name)
            client = self._client(name)
            try:
                keys = await self._list_keys(name, self._prefix(vrg, profile))
                for i in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[i : i + DELETE_BATCH_SIZE]
                    resp = await asyncio.to_thread(
                        client.delete_objects,
                        Bucket=profile["bucket"],
                        Delete={"Objects": [{"Key": k} for k in batch]},
                    )
                    failed = resp.get("Errors") or []
                    if failed:
                        details = ", ".join(
                            f"{err.get('Key')} ({err.get('Code')})" for err in failed
                        )
                        raise ClusterDataError(
                            f"failed to delete PV cluster data of {vrg.key} "
                            f"from {name}: {details}"
                        )
            except _S3_ERRORS as e:
                raise ClusterDataError(
                    f"failed to delete PV cluster data of {vrg.key} from {name}: {e}"
                ) from e
            logger.info(f"Deleted {len(keys)} PV objects of {vrg.key} from {name}")
