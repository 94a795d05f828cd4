"""PVC event filtering and PVC to VolumeReplicationGroup mapping.

Create events always pass; the VolumeReplicationGroups a PVC belongs to are
found by label match. Updates pass only for changes that can alter what a
VolumeReplicationGroup does with the PVC. Delete events never pass: PVC
deletion is held back until the VolumeReplicationGroup itself is deleted, so
that a VolumeReplication is never left behind with state that does not match
the VolumeReplicationGroup.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from marshmallow import ValidationError
from ramen.common.models.labels import Finalizers
from ramen.resources.base import BaseStore
from ramen.types.schemas import LabelSelectorSchema
from ramen.utils.errors import SelectorError, StoreError
from ramen.utils.helpers import contains_string, deep_compare_dict, namespaced_name

logger = logging.getLogger(__name__)

CLAIM_BOUND = "Bound"

Body = Dict[str, Any]


def _meta(pvc: Body) -> Body:
    return pvc.get("metadata") or {}


def _phase(pvc: Body) -> Optional[str]:
    return (pvc.get("status") or {}).get("phase")


def skip_pvc(pvc: Body) -> Tuple[bool, str]:
    """Decide whether a PVC cannot be processed for VR protection yet.

    A PVC is skipped while it is not Bound, and once it is being deleted
    without the VR protection finalizer (nothing left to release).
    """
    meta = _meta(pvc)
    if _phase(pvc) != CLAIM_BOUND:
        return True, f"PVC not bound (phase {_phase(pvc)})"
    if meta.get("deletionTimestamp") and not contains_string(
        meta.get("finalizers"), Finalizers.PVC_VR_PROTECTION
    ):
        return True, "PVC is being deleted and is not VR protected"
    return False, ""


def create_event_decision(pvc: Body) -> bool:
    meta = _meta(pvc)
    logger.info(
        f"Create event for PersistentVolumeClaim {namespaced_name(meta.get('namespace'), meta.get('name'))}"
    )
    return True


def delete_event_decision(pvc: Body) -> bool:
    return False


def update_event_decision(old_pvc: Body, new_pvc: Body) -> bool:
    """Return True when a PVC update must trigger a reconcile."""
    meta = _meta(new_pvc)
    pvc_name = namespaced_name(meta.get("namespace"), meta.get("name"))

    if not deep_compare_dict(old_pvc.get("spec") or {}, new_pvc.get("spec") or {}):
        logger.info(f"Reconciling due to change in spec of PVC {pvc_name}")
        return True

    if _phase(old_pvc) != CLAIM_BOUND and _phase(new_pvc) == CLAIM_BOUND:
        logger.info(
            f"Reconciling due to phase change of PVC {pvc_name} "
            f"({_phase(old_pvc)} -> {_phase(new_pvc)})"
        )
        return True

    if contains_string(
        _meta(old_pvc).get("finalizers"), Finalizers.PVC_IN_USE
    ) and not contains_string(meta.get("finalizers"), Finalizers.PVC_IN_USE):
        logger.info(f"Reconciling due to PVC {pvc_name} not in use")
        return True

    skip, _ = skip_pvc(new_pvc)
    if not skip:
        logger.info(f"Reconciling due to VR protection of PVC {pvc_name}")
        return True

    logger.debug(
        f"Not requeuing for PVC {pvc_name} "
        f"(old phase {_phase(old_pvc)}, new phase {_phase(new_pvc)})"
    )
    return False


async def map_pvc_to_vrgs(store: BaseStore, pvc: Body) -> List[str]:
    """Return `namespace/name` of every VolumeReplicationGroup selecting the PVC."""
    meta = _meta(pvc)
    namespace = meta.get("namespace")
    labels = meta.get("labels") or {}
    pvc_name = namespaced_name(namespace, meta.get("name"))

    try:
        vrgs = await store.list_vrgs(namespace)
    except StoreError as e:
        logger.error(f"Failed to list VolumeReplicationGroups for PVC {pvc_name}: {e}")
        return []

    requests = []
    for vrg in vrgs:
        vrg_meta = vrg.get("metadata") or {}
        selector_body = (vrg.get("spec") or {}).get("pvcSelector") or {}
        try:
            selector = LabelSelectorSchema().load(selector_body)
            matched = selector.matches(labels)
        except (SelectorError, ValidationError) as e:
            # The PVC may still belong to another VolumeReplicationGroup
            logger.error(
                f"Failed to evaluate label selector of VolumeReplicationGroup "
                f"{vrg_meta.get('name')} for PVC {pvc_name}: {e}"
            )
            continue
        if matched:
            logger.info(
                f"Found VolumeReplicationGroup {vrg_meta.get('name')} with labels "
                f"matching PVC {pvc_name}"
            )
            requests.append(namespaced_name(vrg_meta.get("namespace"), vrg_meta.get("name")))
    return requests
