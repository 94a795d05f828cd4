import copy
import kopf
from logging import Logger
from typing import Any, Dict, Optional
from ramen.reconciler.predicates import (
    create_event_decision,
    delete_event_decision,
    map_pvc_to_vrgs,
    update_event_decision,
)
from ramen.handlers.vrg import request_reconciliation
from ramen.utils.helpers import split_namespaced_name

EVENT_DELETED = "DELETED"

# Last seen state of each PVC by uid, so updates can be compared old to new
pvc_cache: Dict[str, Dict[str, Any]] = {}


def decide_pvc_event(
    cache: Dict[str, Dict[str, Any]], event_type: Optional[str], body: Dict[str, Any]
) -> bool:
    """Return True when the PVC event must trigger a reconcile.

    The first sighting of a PVC (initial listing or ADDED) is a create; later
    sightings are updates against the cached state.
    """
    uid = (body.get("metadata") or {}).get("uid")
    if event_type == EVENT_DELETED:
        cache.pop(uid, None)
        return delete_event_decision(body)

    old = cache.get(uid)
    cache[uid] = copy.deepcopy(body)
    if old is None:
        return create_event_decision(body)
    return update_event_decision(old, body)


@kopf.on.event("v1", "persistentvolumeclaims")
async def on_pvc_event(event, body, memo: kopf.Memo, logger: Logger, **kwargs):
    """Queue the VolumeReplicationGroups selecting a PVC that changed in a relevant way."""
    pvc = copy.deepcopy(dict(body))
    if not decide_pvc_event(pvc_cache, event.get("type"), pvc):
        return
    store = getattr(memo, "store", None)
    if store is None:
        return
    for key in await map_pvc_to_vrgs(store, pvc):
        namespace, name = split_namespaced_name(key)
        request_reconciliation(memo, namespace, name)
