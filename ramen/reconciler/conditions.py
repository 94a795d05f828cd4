"""VolumeReplicationGroup summary conditions.

Conditions are kept as a small ordered set keyed by `type`. Entries are plain
dicts; `Conditions` never hands out references to its own entries.
"""

from typing import Dict, Iterator, List, Optional
from ramen.utils.helpers import now

# Condition types
DATA_READY = "DataReady"
DATA_PROTECTED = "DataProtected"
CLUSTER_DATA_READY = "ClusterDataReady"
CLUSTER_DATA_PROTECTED = "ClusterDataProtected"

#: Conditions rolled up from the per-PVC conditions of both backends
AGGREGATED_TYPES = (DATA_READY, DATA_PROTECTED, CLUSTER_DATA_PROTECTED)

#: Conditions that must all be True before a VRG stops being polled
REQUIRED_TYPES = (DATA_READY, DATA_PROTECTED, CLUSTER_DATA_PROTECTED)

ALL_TYPES = (DATA_READY, DATA_PROTECTED, CLUSTER_DATA_READY, CLUSTER_DATA_PROTECTED)

# Condition status
TRUE = "True"
FALSE = "False"
UNKNOWN = "Unknown"

# Condition reasons
REASON_INITIALIZING = "Initializing"
REASON_ERROR = "Error"
REASON_PROGRESSING = "Progressing"
REASON_READY = "Ready"
REASON_REPLICATING = "Replicating"
REASON_PROTECTED = "Protected"
REASON_UPLOADED = "Uploaded"
REASON_UPLOAD_ERROR = "UploadError"
REASON_RESTORED = "Restored"
REASON_UNUSED = "Unused"


class Conditions:
    """Ordered set of conditions, unique by type."""

    def __init__(self, conditions: Optional[List[Dict]] = None) -> None:
        self._items: List[Dict] = [dict(c) for c in (conditions or [])]

    def __iter__(self) -> Iterator[Dict]:
        return (dict(c) for c in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def find(self, type_: str) -> Optional[Dict]:
        for c in self._items:
            if c.get("type") == type_:
                return dict(c)
        return None

    def upsert(self, newc: Dict) -> "Conditions":
        """In-memory merge by .type. Only bump lastTransitionTime when status flips."""
        for i, c in enumerate(self._items):
            if c.get("type") == newc["type"]:
                ltt = c.get("lastTransitionTime") or now()
                if c.get("status") != newc["status"]:
                    ltt = now()
                self._items[i] = {**c, **newc, "lastTransitionTime": ltt}
                break
        else:
            self._items.append({**newc, "lastTransitionTime": now()})
        return self

    def is_true(self, type_: str, generation: Optional[int] = None) -> bool:
        c = self.find(type_)
        if c is None or c.get("status") != TRUE:
            return False
        return generation is None or c.get("observedGeneration") == generation

    def as_list(self) -> List[Dict]:
        return [dict(c) for c in self._items]


def condition(
    type_: str, status: str, reason: str, message: str, generation: int
) -> Dict:
    return {
        "type": type_,
        "status": status,
        "reason": reason,
        "message": message,
        "observedGeneration": generation,
    }


def set_condition(status: Dict, newc: Dict) -> None:
    """Upsert `newc` into `status["conditions"]`."""
    status["conditions"] = Conditions(status.get("conditions")).upsert(newc).as_list()


def find_condition(status: Dict, type_: str) -> Optional[Dict]:
    return Conditions(status.get("conditions")).find(type_)


def set_initial_conditions(status: Dict, generation: int, message: str) -> None:
    """Nothing is known yet: every summary condition is Unknown."""
    for type_ in ALL_TYPES:
        set_condition(
            status,
            condition(type_, UNKNOWN, REASON_INITIALIZING, message, generation),
        )


def set_data_error_condition(status: Dict, generation: int, message: str) -> None:
    set_condition(
        status, condition(DATA_READY, FALSE, REASON_ERROR, message, generation)
    )


def set_cluster_data_ready_condition(
    status: Dict, generation: int, message: str
) -> None:
    set_condition(
        status,
        condition(CLUSTER_DATA_READY, TRUE, REASON_RESTORED, message, generation),
    )


def set_cluster_data_error_condition(
    status: Dict, generation: int, message: str
) -> None:
    set_condition(
        status,
        condition(CLUSTER_DATA_READY, FALSE, REASON_ERROR, message, generation),
    )


def set_unused_conditions(status: Dict, generation: int) -> None:
    """No PVC is selected; nothing needs to be protected."""
    for type_ in AGGREGATED_TYPES:
        set_condition(
            status,
            condition(
                type_,
                TRUE,
                REASON_UNUSED,
                "No PVCs are protected using this VolumeReplicationGroup",
                generation,
            ),
        )


def required_conditions_ready(status: Dict) -> bool:
    conds = Conditions(status.get("conditions"))
    return all(conds.is_true(type_) for type_ in REQUIRED_TYPES)


def worst_of(type_: str, conditions: List[Optional[Dict]], generation: int) -> Optional[Dict]:
    """Roll up per-PVC conditions of one type: False beats Unknown beats True.

    A missing per-PVC condition counts as Unknown (still progressing).
    Returns None when there is nothing to roll up.
    """
    if not conditions:
        return None
    total = len(conditions)
    rank = {FALSE: 0, UNKNOWN: 1, TRUE: 2}
    pending = condition(
        type_, UNKNOWN, REASON_PROGRESSING, "PVC condition not yet reported", generation
    )
    entries = [c if c is not None else pending for c in conditions]
    worst = min(entries, key=lambda c: rank.get(c.get("status"), rank[UNKNOWN]))
    matching = sum(1 for c in entries if c.get("status") == worst.get("status"))
    if worst.get("status") == TRUE:
        message = f"All {total} PVCs report {type_}: {worst.get('message', '')}"
    else:
        message = (
            f"{matching} of {total} PVCs report {type_} {worst.get('status')}: "
            f"{worst.get('message', '')}"
        )
    return condition(
        type_,
        worst.get("status", UNKNOWN),
        worst.get("reason", REASON_PROGRESSING),
        message.strip(),
        generation,
    )
