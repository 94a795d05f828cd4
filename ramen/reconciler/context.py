from dataclasses import dataclass, field, replace
from logging import Logger
from typing import Any, Dict, List, Optional, Tuple
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.utils.helpers import deep_copy

Body = Dict[str, Any]


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconcile invocation.

    `requeue` asks for a retry with failure backoff; `requeue_after` asks for a
    retry after a fixed delay. Neither means the VRG is settled.
    """

    requeue: bool = False
    requeue_after: Optional[float] = None

    @property
    def settled(self) -> bool:
        return not self.requeue and self.requeue_after is None


DONE = ReconcileResult()
REQUEUE = ReconcileResult(requeue=True)


@dataclass(frozen=True)
class VolumeClassification:
    """PVCs of one reconcile split between the two replication backends.

    `vol_rep_pvcs` are protected by block-level VolumeReplication (backend A),
    `vol_sync_pvcs` by snapshot based VolSync (backend B).
    """

    vol_rep_pvcs: Tuple[Body, ...] = ()
    vol_sync_pvcs: Tuple[Body, ...] = ()
    replication_classes: Tuple[Body, ...] = ()
    storage_classes: Dict[str, Body] = field(default_factory=dict)

    @property
    def vol_rep_names(self) -> List[str]:
        return [pvc["metadata"]["name"] for pvc in self.vol_rep_pvcs]

    @property
    def vol_sync_names(self) -> List[str]:
        return [pvc["metadata"]["name"] for pvc in self.vol_sync_pvcs]


@dataclass(frozen=True)
class ReconcileContext:
    """Per-invocation state threaded through the reconcile stages.

    `saved_status` is the status as loaded and is never modified; `status` is
    the draft each stage writes into. `classification` is filled in once the
    PVCs are split between backends.
    """

    vrg: VolumeReplicationGroup
    saved_status: Body
    status: Body
    logger: Logger
    classification: VolumeClassification = field(default_factory=VolumeClassification)

    @classmethod
    def load(cls, vrg: VolumeReplicationGroup, logger: Logger) -> "ReconcileContext":
        saved_status = deep_copy(vrg.status)
        if saved_status.get("protectedPVCs") is None:
            saved_status["protectedPVCs"] = []
        return cls(
            vrg=vrg,
            saved_status=saved_status,
            status=deep_copy(vrg.status),
            logger=logger,
        )

    @property
    def generation(self) -> int:
        return self.vrg.generation

    def with_classification(self, classification: VolumeClassification) -> "ReconcileContext":
        return replace(self, classification=classification)
