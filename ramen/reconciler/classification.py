"""Split the PVCs selected by a VolumeReplicationGroup between backends.

Outside of deletion a PVC is protected by VolumeReplication when its storage
class provisioner matches the provisioner of one of the selected
VolumeReplicationClasses, and by VolSync otherwise. During deletion labels
may already be gone, so the split recorded in `status.protectedPVCs` is
replayed instead.
"""

from dataclasses import replace
from typing import Dict, List, Optional
from ramen.reconciler.context import Body, ReconcileContext, VolumeClassification
from ramen.resources.base import BaseStore
from ramen.utils.errors import ClassificationError, SelectorError, StoreError


def _name(obj: Body) -> str:
    return obj["metadata"]["name"]


async def list_pvcs(store: BaseStore, ctx: ReconcileContext) -> List[Body]:
    vrg = ctx.vrg
    try:
        selector = vrg.spec.pvc_selector.as_str()
    except SelectorError as e:
        raise ClassificationError(f"invalid PVC label selector: {e}") from e
    ctx.logger.info(f"Fetching PersistentVolumeClaims labeled `{selector}`")
    try:
        pvcs = await store.list_pvcs(vrg.namespace, selector)
    except StoreError as e:
        raise ClassificationError(f"failed to list PersistentVolumeClaims: {e}") from e
    ctx.logger.info(f"Found {len(pvcs)} PVCs using matching labels `{selector}`")
    return sorted(pvcs, key=_name)


async def list_replication_classes(store: BaseStore, ctx: ReconcileContext) -> List[Body]:
    try:
        selector = ctx.vrg.spec.replication_class_selector.as_str()
    except SelectorError as e:
        raise ClassificationError(f"invalid replication class selector: {e}") from e
    try:
        classes = await store.list_replication_classes(selector)
    except StoreError as e:
        raise ClassificationError(
            f"failed to get VolumeReplicationClass list: {e}"
        ) from e
    ctx.logger.info(f"Number of VolumeReplicationClasses: {len(classes)}")
    return sorted(classes, key=_name)


def separate_pvcs_using_vrg_status(
    pvcs: List[Body], protected_pvcs: Optional[List[Body]]
) -> VolumeClassification:
    """Route each listed PVC by its `protectedPVCs` record; PVCs without one are dropped."""
    records = {p["name"]: p for p in (protected_pvcs or [])}
    vol_rep, vol_sync = [], []
    for pvc in pvcs:
        record = records.get(_name(pvc))
        if record is None:
            continue
        if record.get("protectedByVolSync"):
            vol_sync.append(pvc)
        else:
            vol_rep.append(pvc)
    return VolumeClassification(vol_rep_pvcs=tuple(vol_rep), vol_sync_pvcs=tuple(vol_sync))


async def separate_pvcs_using_storage_class_provisioner(
    store: BaseStore, pvcs: List[Body], replication_classes: List[Body]
) -> VolumeClassification:
    """Route PVCs by storage class provisioner.

    Raises:
        ClassificationError: if any storage class cannot be read. No partial
            result is returned.
    """
    provisioners = {
        (rc.get("spec") or {}).get("provisioner") for rc in replication_classes
    }
    storage_classes: Dict[str, Body] = {}
    vol_rep, vol_sync = [], []
    for pvc in pvcs:
        sc_name = (pvc.get("spec") or {}).get("storageClassName")
        if not sc_name:
            raise ClassificationError(
                f"PersistentVolumeClaim {_name(pvc)} has no storage class"
            )
        if sc_name not in storage_classes:
            try:
                storage_classes[sc_name] = await store.get_storage_class(sc_name)
            except StoreError as e:
                raise ClassificationError(
                    f"failed to get the storageclass with name {sc_name} ({e})"
                ) from e
        if storage_classes[sc_name].get("provisioner") in provisioners:
            vol_rep.append(pvc)
        else:
            vol_sync.append(pvc)
    return VolumeClassification(
        vol_rep_pvcs=tuple(vol_rep),
        vol_sync_pvcs=tuple(vol_sync),
        replication_classes=tuple(replication_classes),
        storage_classes=storage_classes,
    )


async def classify_pvcs(store: BaseStore, ctx: ReconcileContext) -> VolumeClassification:
    """Build the backend split for this reconcile.

    Replication classes are listed once and carried on the result, so the
    VolumeReplication backend picks its class from the same list.

    Raises:
        ClassificationError: if PVCs, replication classes or a storage class
            cannot be read.
    """
    pvcs = await list_pvcs(store, ctx)
    replication_classes = await list_replication_classes(store, ctx)
    vrg = ctx.vrg

    if vrg.is_deleting:
        classification = separate_pvcs_using_vrg_status(
            pvcs, ctx.status.get("protectedPVCs")
        )
        ctx.logger.info(
            f"Separated PVCs ({len(pvcs)}) into VolRepPVCs "
            f"({len(classification.vol_rep_pvcs)}) and VolSyncPVCs "
            f"({len(classification.vol_sync_pvcs)})"
        )
        return replace(classification, replication_classes=tuple(replication_classes))

    if vrg.spec.vol_sync_disabled:
        ctx.logger.info(f"VolSync disabled, using all {len(pvcs)} PVCs with VolRep")
        return VolumeClassification(
            vol_rep_pvcs=tuple(pvcs), replication_classes=tuple(replication_classes)
        )

    if not replication_classes:
        ctx.logger.info(
            f"No VolumeReplicationClass available. Using all {len(pvcs)} PVCs with VolSync"
        )
        return VolumeClassification(vol_sync_pvcs=tuple(pvcs))

    classification = await separate_pvcs_using_storage_class_provisioner(
        store, pvcs, replication_classes
    )
    ctx.logger.info(
        f"Found {len(classification.vol_rep_pvcs)} PVCs targeted for VolRep and "
        f"{len(classification.vol_sync_pvcs)} targeted for VolSync"
    )
    return classification
