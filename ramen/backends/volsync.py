"""Snapshot based replication through VolSync.

A primary PVC is the source of a ReplicationSource; on the secondary a
ReplicationDestination receives the snapshots. Both objects are named after
the PVC and owned by the VolumeReplicationGroup.
"""

from typing import Optional, Sequence
from ramen.backends.base import Body, ReplicationBackend, pvc_name
from ramen.common.models.labels import Finalizers, Labels
from ramen.reconciler import conditions as conds
from ramen.reconciler.context import ReconcileContext
from ramen.reconciler.predicates import skip_pvc
from ramen.utils.errors import NotFoundError, StoreError
from ramen.utils.helpers import scheduling_interval_to_cron

VOLSYNC_GROUP = "volsync.backube"
VOLSYNC_VERSION = "v1alpha1"

REPLICATION_SOURCE_KIND = "ReplicationSource"
REPLICATION_SOURCE_PLURAL = "replicationsources"
REPLICATION_DESTINATION_KIND = "ReplicationDestination"
REPLICATION_DESTINATION_PLURAL = "replicationdestinations"

COPY_METHOD_SNAPSHOT = "Snapshot"


class VolSyncBackend(ReplicationBackend):
    """VolSync backend."""

    NAME = "volsync"
    PROTECTED_BY_VOLSYNC = True

    def _metadata(self, ctx: ReconcileContext, pvc: Body) -> Body:
        vrg = ctx.vrg
        return {
            "name": pvc_name(pvc),
            "namespace": vrg.namespace,
            "labels": Labels().include_managed_by().include_part_of(vrg.name).as_dict(),
            "ownerReferences": [vrg.owner_reference()],
        }

    def _trigger(self, ctx: ReconcileContext) -> Optional[Body]:
        """Return the sync trigger for the scheduling interval, if one is set.

        Raises:
            ValueError: if the scheduling interval cannot be parsed.
        """
        interval = ctx.vrg.spec.scheduling_interval
        if not interval:
            return None
        return {"schedule": scheduling_interval_to_cron(interval)}

    def _volume_snapshot_class(self, ctx: ReconcileContext) -> Optional[str]:
        # The class itself is picked by label; only a single-label selector
        # names it directly.
        async_spec = ctx.vrg.spec.async_
        if async_spec is None or async_spec.volume_snapshot_class_selector is None:
            return None
        labels = async_spec.volume_snapshot_class_selector.match_labels or {}
        return labels.get("name")

    def build_replication_source(
        self, ctx: ReconcileContext, pvc: Body, trigger: Optional[Body]
    ) -> Body:
        spec = {
            "sourcePVC": pvc_name(pvc),
            "rsyncTLS": {"copyMethod": COPY_METHOD_SNAPSHOT},
        }
        snapshot_class = self._volume_snapshot_class(ctx)
        if snapshot_class:
            spec["rsyncTLS"]["volumeSnapshotClassName"] = snapshot_class
        if trigger:
            spec["trigger"] = trigger
        return {
            "apiVersion": f"{VOLSYNC_GROUP}/{VOLSYNC_VERSION}",
            "kind": REPLICATION_SOURCE_KIND,
            "metadata": self._metadata(ctx, pvc),
            "spec": spec,
        }

    def build_replication_destination(self, ctx: ReconcileContext, pvc: Body) -> Body:
        pvc_spec = pvc.get("spec") or {}
        rsync = {
            "copyMethod": COPY_METHOD_SNAPSHOT,
            "capacity": ((pvc_spec.get("resources") or {}).get("requests") or {}).get(
                "storage"
            ),
            "accessModes": pvc_spec.get("accessModes"),
            "storageClassName": pvc_spec.get("storageClassName"),
        }
        snapshot_class = self._volume_snapshot_class(ctx)
        if snapshot_class:
            rsync["volumeSnapshotClassName"] = snapshot_class
        return {
            "apiVersion": f"{VOLSYNC_GROUP}/{VOLSYNC_VERSION}",
            "kind": REPLICATION_DESTINATION_KIND,
            "metadata": self._metadata(ctx, pvc),
            "spec": {"rsyncTLS": {k: v for k, v in rsync.items() if v is not None}},
        }

    async def reconcile_as_primary(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        try:
            trigger = self._trigger(ctx)
        except ValueError as e:
            for pvc in pvcs:
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR, str(e)
                )
            return True

        requeue = False
        for pvc in pvcs:
            name = pvc_name(pvc)
            skip, reason = skip_pvc(pvc)
            if skip:
                ctx.logger.info(f"Skipping VolSync handling of PVC {name}: {reason}")
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_READY, conds.UNKNOWN, conds.REASON_PROGRESSING, reason
                )
                requeue = True
                continue
            try:
                pvc = await self.add_pvc_finalizer(pvc, Finalizers.PVC_VR_PROTECTION)
                rs = await self.store.apply_custom_object(
                    VOLSYNC_GROUP,
                    VOLSYNC_VERSION,
                    REPLICATION_SOURCE_PLURAL,
                    ctx.vrg.namespace,
                    self.build_replication_source(ctx, pvc, trigger),
                )
            except StoreError as e:
                ctx.logger.info(f"Failed to reconcile ReplicationSource for PVC {name}: {e}")
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                    f"Failed to reconcile ReplicationSource ({e})",
                )
                requeue = True
                continue

            self.set_pvc_condition(
                ctx, pvc, conds.DATA_READY, conds.TRUE, conds.REASON_READY,
                "PVC in the VolumeReplicationGroup is ready for use",
            )
            self.set_pvc_condition(
                ctx, pvc, conds.CLUSTER_DATA_PROTECTED, conds.TRUE, conds.REASON_PROTECTED,
                "PVC cluster data is kept by VolSync",
            )
            if (rs.get("status") or {}).get("lastSyncTime"):
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_PROTECTED, conds.TRUE, conds.REASON_REPLICATING,
                    "PVC data has been synced",
                )
            else:
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_PROTECTED, conds.UNKNOWN, conds.REASON_PROGRESSING,
                    "Waiting for the first sync of the PVC",
                )
                requeue = True
        return requeue

    async def reconcile_as_secondary(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        requeue = False
        for pvc in pvcs:
            name = pvc_name(pvc)
            try:
                rd = await self.store.apply_custom_object(
                    VOLSYNC_GROUP,
                    VOLSYNC_VERSION,
                    REPLICATION_DESTINATION_PLURAL,
                    ctx.vrg.namespace,
                    self.build_replication_destination(ctx, pvc),
                )
            except StoreError as e:
                ctx.logger.info(
                    f"Failed to reconcile ReplicationDestination for PVC {name}: {e}"
                )
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_READY, conds.FALSE, conds.REASON_ERROR,
                    f"Failed to reconcile ReplicationDestination ({e})",
                )
                requeue = True
                continue

            self.set_pvc_condition(
                ctx, pvc, conds.CLUSTER_DATA_PROTECTED, conds.TRUE, conds.REASON_PROTECTED,
                "PVC cluster data is kept by VolSync",
            )
            if (rd.get("status") or {}).get("latestImage"):
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_READY, conds.TRUE, conds.REASON_REPLICATING,
                    "PVC in the VolumeReplicationGroup is replicating",
                )
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_PROTECTED, conds.TRUE, conds.REASON_PROTECTED,
                    "PVC in the VolumeReplicationGroup is protected",
                )
            else:
                self.set_pvc_condition(
                    ctx, pvc, conds.DATA_READY, conds.UNKNOWN, conds.REASON_PROGRESSING,
                    "Waiting for the first snapshot to arrive",
                )
                requeue = True
        return requeue

    async def reconcile_for_deletion(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        requeue = False
        for pvc in pvcs:
            name = pvc_name(pvc)
            try:
                for plural in (REPLICATION_SOURCE_PLURAL, REPLICATION_DESTINATION_PLURAL):
                    await self.store.delete_custom_object(
                        VOLSYNC_GROUP, VOLSYNC_VERSION, plural, ctx.vrg.namespace, name
                    )
                await self.remove_pvc_finalizer(pvc, Finalizers.PVC_VR_PROTECTION)
            except NotFoundError:
                pass
            except StoreError as e:
                ctx.logger.info(f"Failed to clean up VolSync objects of PVC {name}: {e}")
                requeue = True
                continue
            self.remove_protected_pvc(ctx, name)
        return requeue
