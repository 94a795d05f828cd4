from typing import Any, Dict, List, Optional, Sequence
from ramen.reconciler import conditions as conds
from ramen.reconciler.context import ReconcileContext
from ramen.resources.base import BaseStore
from ramen.utils.helpers import contains_string, remove_string

Body = Dict[str, Any]


def pvc_name(pvc: Body) -> str:
    return pvc["metadata"]["name"]


class ReplicationBackend:
    """Per-PVC replication driver.

    A backend reconciles the replication objects of the PVCs routed to it and
    reports per-PVC progress as conditions on the PVC's entry in
    `status.protectedPVCs`. The VolumeReplicationGroup level verdict is the
    worst of those conditions.

    The `reconcile_*` coroutines return True when the backend wants the
    VolumeReplicationGroup reconciled again.
    """

    #: Short backend name used in logs and metrics
    NAME: str = ""

    #: Value recorded as `protectedByVolSync` for the PVCs of this backend
    PROTECTED_BY_VOLSYNC: bool = False

    store: BaseStore

    def __init__(self, store: BaseStore, events=None, cluster_data=None) -> None:
        self.store = store
        self.events = events
        self.cluster_data = cluster_data

    async def reconcile_as_primary(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        raise NotImplementedError()

    async def reconcile_as_secondary(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        raise NotImplementedError()

    async def reconcile_for_deletion(
        self, ctx: ReconcileContext, pvcs: Sequence[Body]
    ) -> bool:
        raise NotImplementedError()

    async def restore_pvs(self, ctx: ReconcileContext) -> None:
        """Recreate the cluster data this backend needs before running as primary.

        Raises:
            ramen.utils.errors.ClusterDataError: if the restore failed.
        """
        pass

    def aggregate_condition(
        self, ctx: ReconcileContext, type_: str, pvcs: Sequence[Body]
    ) -> Optional[Dict]:
        """Worst-of roll-up of the `type_` condition over `pvcs`; None without PVCs."""
        per_pvc = []
        for pvc in pvcs:
            record = self.protected_pvc(ctx, pvc_name(pvc))
            per_pvc.append(
                conds.Conditions(record.get("conditions")).find(type_)
                if record
                else None
            )
        return conds.worst_of(type_, per_pvc, ctx.generation)

    # protectedPVCs bookkeeping

    def protected_pvc(self, ctx: ReconcileContext, name: str) -> Optional[Body]:
        for record in ctx.status.get("protectedPVCs") or []:
            if record.get("name") == name:
                return record
        return None

    def ensure_protected_pvc(self, ctx: ReconcileContext, pvc: Body) -> Body:
        """Return the PVC's entry in the draft status, adding it if missing."""
        name = pvc_name(pvc)
        record = self.protected_pvc(ctx, name)
        if record is None:
            record = {
                "name": name,
                "protectedByVolSync": self.PROTECTED_BY_VOLSYNC,
                "storageClassName": (pvc.get("spec") or {}).get("storageClassName"),
                "conditions": [],
            }
            records = list(ctx.status.get("protectedPVCs") or [])
            records.append(record)
            ctx.status["protectedPVCs"] = sorted(records, key=lambda r: r["name"])
        elif (
            record.get("protectedByVolSync") != self.PROTECTED_BY_VOLSYNC
            and not ctx.vrg.is_deleting
        ):
            # PVC moved to this backend; the other backend's conditions no longer apply
            record["protectedByVolSync"] = self.PROTECTED_BY_VOLSYNC
            record["conditions"] = []
        return record

    def remove_protected_pvc(self, ctx: ReconcileContext, name: str) -> None:
        ctx.status["protectedPVCs"] = [
            r for r in ctx.status.get("protectedPVCs") or [] if r.get("name") != name
        ]

    def set_pvc_condition(
        self,
        ctx: ReconcileContext,
        pvc: Body,
        type_: str,
        status: str,
        reason: str,
        message: str,
    ) -> None:
        record = self.ensure_protected_pvc(ctx, pvc)
        record["conditions"] = (
            conds.Conditions(record.get("conditions"))
            .upsert(conds.condition(type_, status, reason, message, ctx.generation))
            .as_list()
        )

    # PVC metadata

    async def add_pvc_finalizer(self, pvc: Body, finalizer: str) -> Body:
        meta = pvc["metadata"]
        if contains_string(meta.get("finalizers"), finalizer):
            return pvc
        finalizers: List[str] = list(meta.get("finalizers") or []) + [finalizer]
        return await self.store.patch_pvc(
            meta["namespace"],
            meta["name"],
            {"metadata": {"finalizers": finalizers, "resourceVersion": meta.get("resourceVersion")}},
        )

    async def remove_pvc_finalizer(self, pvc: Body, finalizer: str) -> Body:
        meta = pvc["metadata"]
        if not contains_string(meta.get("finalizers"), finalizer):
            return pvc
        return await self.store.patch_pvc(
            meta["namespace"],
            meta["name"],
            {
                "metadata": {
                    "finalizers": remove_string(meta.get("finalizers"), finalizer),
                    "resourceVersion": meta.get("resourceVersion"),
                }
            },
        )

    async def annotate_pvc(self, pvc: Body, key: str, value: str) -> Body:
        meta = pvc["metadata"]
        if (meta.get("annotations") or {}).get(key) == value:
            return pvc
        return await self.store.patch_pvc(
            meta["namespace"], meta["name"], {"metadata": {"annotations": {key: value}}}
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
