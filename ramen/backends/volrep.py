"""Block level replication through VolumeReplication custom resources.

Each PVC gets a VolumeReplication named after it and owned by the
VolumeReplicationGroup. The PVC carries a finalizer while it is protected, so
it cannot go away before its VolumeReplication does.
"""

from typing import Dict, Optional, Sequence
from ramen.backends.base import Body, ReplicationBackend, pvc_name
from ramen.common.models.labels import Annotations, Finalizers, Labels
from ramen.reconciler import conditions as conds
from ramen.reconciler.context import ReconcileContext
from ramen.reconciler.predicates import skip_pvc
from ramen.resources.kube import VOLREP_GROUP, VOLREP_VERSION
from ramen.types.models import PRIMARY, SECONDARY
from ramen.utils.errors import ClusterDataError, NotFoundError, StoreError
from ramen.utils.events import (
    EVENT_PV_RESTORE_FAILED,
    EVENT_PV_UPLOAD_FAILED,
    EVENT_TYPE_WARNING,
)

VOLREP_KIND = "VolumeReplication"
VOLREP_PLURAL = "volumereplications"

#: VolumeReplication condition reporting that the requested state was reached
VR_COMPLETED = "Completed"


def volume_replication_completed(vr: Body) -> Optional[Dict]:
    """Return the `Completed` condition of a VolumeReplication, if reported
    for its current generation."""
    status = vr.get("status") or {}
    generation = (vr.get("metadata") or {}).get("generation")
    observed = status.get("observedGeneration")
    if generation is not None and observed is not None and observed != generation:
        return None
    for c in status.get("conditions") or []:
        if c.get("type") == VR_COMPLETED:
            return c
    return None


class VolRepBackend(ReplicationBackend):
    """VolumeReplication backend."""

    NAME = "volrep"
    PROTECTED_BY_VOLSYNC = False

    def select_replication_class(
        self, ctx: ReconcileContext, storage_class: Body
    ) -> Optional[str]:
        """Pick the first replication class whose provisioner, and scheduling
        interval when the VolumeReplicationGroup sets one, match."""
        interval = ctx.vrg.spec.scheduling_interval
        for rc in ctx.classification.replication_classes:
            spec = rc.get("spec") or {}
            if spec.get("provisioner") != storage_class.get("provisioner"):
                continue
            rc_interval = (spec.get("parameters") or {}).get("schedulingInterval")
            if interval and rc_interval and rc_interval != interval:
                continue
            return rc["metadata"]["name"]
        return None

    async def storage_class_for(self, ctx: ReconcileContext, pvc: Body) -> Body:
        sc_name = (pvc.get("spec") or {}).get("storageClassName")
        if sc_name in ctx.classification.storage_classes:
            return ctx.classification.storage_classes[sc_name]
        return await self.store.get_storage_class(sc_name)

    def build_volume_replication(
        self, ctx: ReconcileContext, pvc: Body, class_name: str, state: str
    ) -> Body:
        vrg = ctx.vrg
        return {
            "apiVersion": f"{VOLREP_GROUP}/{VOLREP_VERSION}",
            "kind": VOLREP_KIND,
            "metadata": {
                "name": pvc_name(pvc),
                "namespace": vrg.namespace,
                "labels": Labels().include_managed_by().include_part_of(vrg.name).as_dict(),
                "ownerReferences": [vrg.owner_reference()],
            },
            "spec": {
                "volumeReplicationClass": class_name,
                "replicationState": state,
                "dataSource": {
                    "apiGroup": "",
                    "kind": "PersistentVolumeClaim",
                    "name": pvc_name(pvc),
                },
            },
        }

    async def reconcile_as_primary(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        requeue = False
        for pvc in pvcs:
            if await self._reconcile_pvc(ctx, pvc, PRIMARY):
                requeue = True
        return requeue

    async def reconcile_as_secondary(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        requeue = False
        for pvc in pvcs:
            if await self._reconcile_pvc(ctx, pvc, SECONDARY):
                requeue = True
        return requeue

    async def _reconcile_pvc(self, ctx: ReconcileContext, pvc: Body, state: str) -> bool:
        """Bring one PVC to `state`. Returns True when it needs another pass."""
        name = pvc_name(pvc)
        skip, reason = skip_pvc(pvc)
        if skip:
            ctx.logger.info(f"Skipping handling of VR for PVC {name}: {reason}")
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.UNKNOWN, conds.REASON_PROGRESSING, reason
            )
            return True

        try:
            pvc = await self.add_pvc_finalizer(pvc, Finalizers.PVC_VR_PROTECTION)
        except StoreError as e:
            ctx.logger.info(f"Failed to add protection finalizer to PVC {name}: {e}")
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                f"Failed to add protection finalizer to PVC ({e})",
            )
            return True

        if state == PRIMARY and await self._upload_pv(ctx, pvc):
            return True

        try:
            storage_class = await self.storage_class_for(ctx, pvc)
        except StoreError as e:
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                f"Failed to get storage class of PVC ({e})",
            )
            return True
        class_name = self.select_replication_class(ctx, storage_class)
        if class_name is None:
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                f"No VolumeReplicationClass matches provisioner "
                f"{storage_class.get('provisioner')}",
            )
            return True

        try:
            vr = await self.store.apply_custom_object(
                VOLREP_GROUP,
                VOLREP_VERSION,
                VOLREP_PLURAL,
                ctx.vrg.namespace,
                self.build_volume_replication(ctx, pvc, class_name, state),
            )
        except StoreError as e:
            ctx.logger.info(f"Failed to apply VolumeReplication for PVC {name}: {e}")
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                f"Failed to apply VolumeReplication ({e})",
            )
            return True

        return self._update_pvc_conditions(ctx, pvc, vr, state)

    def _update_pvc_conditions(
        self, ctx: ReconcileContext, pvc: Body, vr: Body, state: str
    ) -> bool:
        completed = volume_replication_completed(vr)
        if completed is None or completed.get("status") == conds.UNKNOWN:
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.UNKNOWN, conds.REASON_PROGRESSING,
                f"VolumeReplication is being moved to {state}",
            )
            return True
        if completed.get("status") != conds.TRUE:
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                f"VolumeReplication failed to move to {state}: "
                f"{completed.get('message', '')}",
            )
            return True

        if state == PRIMARY:
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.TRUE, conds.REASON_READY,
                "PVC in the VolumeReplicationGroup is ready for use",
            )
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_PROTECTED, conds.TRUE, conds.REASON_REPLICATING,
                "PVC in the VolumeReplicationGroup is replicating",
            )
        else:
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.TRUE, conds.REASON_REPLICATING,
                "PVC in the VolumeReplicationGroup is replicating",
            )
            self.set_pvc_condition(
                ctx, pvc, conds.DATA_PROTECTED, conds.TRUE, conds.REASON_PROTECTED,
                "PVC in the VolumeReplicationGroup is protected",
            )
            # The primary owns the cluster data of this PVC
            self.set_pvc_condition(
                ctx, pvc, conds.CLUSTER_DATA_PROTECTED, conds.TRUE,
                conds.REASON_PROTECTED, "PV cluster data is kept by the primary",
            )
        return False

    async def _upload_pv(self, ctx: ReconcileContext, pvc: Body) -> bool:
        """Upload the PV of a bound PVC once. Returns True on failure."""
        name = pvc_name(pvc)
        annotations = pvc["metadata"].get("annotations") or {}
        if annotations.get(Annotations.PVC_VR_PROTECTED_KEY) == Annotations.PVC_VR_PROTECTED_VALUE:
            self.set_pvc_condition(
                ctx, pvc, conds.CLUSTER_DATA_PROTECTED, conds.TRUE, conds.REASON_UPLOADED,
                "PV cluster data already uploaded",
            )
            return False

        try:
            pv = await self.store.get_pv(pvc["spec"]["volumeName"])
            await self.cluster_data.upload_pv(ctx.vrg, pv)
            await self.annotate_pvc(
                pvc, Annotations.PVC_VR_PROTECTED_KEY, Annotations.PVC_VR_PROTECTED_VALUE
            )
        except (StoreError, ClusterDataError) as e:
            message = f"Failed to upload PV cluster data of PVC {name} ({e})"
            ctx.logger.info(message)
            if self.events:
                self.events.report_once(
                    ctx.vrg.body, EVENT_TYPE_WARNING, EVENT_PV_UPLOAD_FAILED, message
                )
            self.set_pvc_condition(
                ctx, pvc, conds.CLUSTER_DATA_PROTECTED, conds.FALSE,
                conds.REASON_UPLOAD_ERROR, message,
            )
            return True

        self.set_pvc_condition(
            ctx, pvc, conds.CLUSTER_DATA_PROTECTED, conds.TRUE, conds.REASON_UPLOADED,
            "PV cluster data uploaded",
        )
        return False

    async def reconcile_for_deletion(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        requeue = False
        for pvc in pvcs:
            name = pvc_name(pvc)
            try:
                await self.store.delete_custom_object(
                    VOLREP_GROUP, VOLREP_VERSION, VOLREP_PLURAL, ctx.vrg.namespace, name
                )
                await self.remove_pvc_finalizer(pvc, Finalizers.PVC_VR_PROTECTION)
            except NotFoundError:
                pass
            except StoreError as e:
                ctx.logger.info(f"Failed to clean up VolumeReplication of PVC {name}: {e}")
                requeue = True
                continue
            self.remove_protected_pvc(ctx, name)
        return requeue

    async def restore_pvs(self, ctx: ReconcileContext) -> None:
        try:
            count = await self.cluster_data.restore_from_backup(ctx.vrg)
        except ClusterDataError as e:
            if self.events:
                self.events.report_once(
                    ctx.vrg.body, EVENT_TYPE_WARNING, EVENT_PV_RESTORE_FAILED, str(e)
                )
            raise
        ctx.logger.info(f"Restored {count} PVs for VolRep")
