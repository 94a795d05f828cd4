import kopf
from logging import Logger
from ramen.resources.kube import VOLREP_GROUP, VOLREP_VERSION, VRG_PLURAL
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.types.settings import VRG_GROUP, VRG_VERSION
from ramen.utils.helpers import namespaced_name

VOLREP_PLURAL = "volumereplications"


def request_reconciliation(memo: kopf.Memo, namespace: str, name: str) -> None:
    """Queue the VolumeReplicationGroup `namespace/name` for reconciliation."""
    queue = getattr(memo, "queue", None)
    if queue is None:
        return
    queue.add(namespaced_name(namespace, name))


def owning_vrgs(body) -> list:
    """Names of the VolumeReplicationGroups listed as owners of an object."""
    owners = (body.get("metadata") or {}).get("ownerReferences") or []
    return [
        ref["name"]
        for ref in owners
        if ref.get("kind") == VolumeReplicationGroup.KIND
        and (ref.get("apiVersion") or "").split("/")[0] == VRG_GROUP
    ]


@kopf.on.resume(VRG_GROUP, VRG_VERSION, VRG_PLURAL)
@kopf.on.create(VRG_GROUP, VRG_VERSION, VRG_PLURAL)
@kopf.on.update(VRG_GROUP, VRG_VERSION, VRG_PLURAL)
async def on_vrg_changed(name, namespace, memo: kopf.Memo, logger: Logger, **kwargs):
    """Queue a VolumeReplicationGroup whose spec or metadata changed."""
    logger.debug(f"Queueing VolumeReplicationGroup {namespace}/{name}")
    request_reconciliation(memo, namespace, name)


# The reconciler owns the protection finalizer, kopf must not add its own.
@kopf.on.delete(VRG_GROUP, VRG_VERSION, VRG_PLURAL, optional=True)
async def on_vrg_deleted(name, namespace, memo: kopf.Memo, logger: Logger, **kwargs):
    """Queue a VolumeReplicationGroup marked for deletion."""
    logger.debug(f"Queueing VolumeReplicationGroup {namespace}/{name} for deletion")
    request_reconciliation(memo, namespace, name)


@kopf.on.event(VOLREP_GROUP, VOLREP_VERSION, VOLREP_PLURAL)
async def on_volume_replication_event(body, namespace, memo: kopf.Memo, **kwargs):
    """Queue the owner of a VolumeReplication whenever it changes."""
    for vrg_name in owning_vrgs(body):
        request_reconciliation(memo, namespace, vrg_name)
