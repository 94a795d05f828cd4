import re
import copy
import jsonpickle
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

_INTERVAL_PATTERN = re.compile(r"^(\d+)([mhd])$")


def now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace(
        "+00:00", "Z"
    )


def namespaced_name(namespace: Optional[str], name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


def split_namespaced_name(key: str):
    """Split `namespace/name` into its parts."""
    namespace, _, name = key.rpartition("/")
    return namespace or None, name


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data) -> str:
    """
    Returns a canonical JSON representation of a dictionary.

    The representation uses sorted keys, which keeps it stable when key order
    varies. Works recursively for nested dictionaries and lists.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False, keys=False)


def deep_compare_dict(data1, data2) -> bool:
    """Compare two data structures deeply.

    Dictionaries are compared regardless of key order, lists element by
    element.

    Returns:
        True if data structures are equivalent, False otherwise
    """
    if data1 is None and data2 is None:
        return True
    if data1 is None or data2 is None:
        return False

    if not isinstance(data1, type(data2)) and not isinstance(data2, type(data1)):
        return False

    try:
        return canonicalize_dict(data1) == canonicalize_dict(data2)
    except (TypeError, ValueError):
        return data1 == data2


def deep_copy(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return copy.deepcopy(data) if data else {}


def contains_string(values: Optional[Iterable[str]], s: str) -> bool:
    return s in (values or [])


def remove_string(values: Optional[Iterable[str]], s: str) -> List[str]:
    return [item for item in (values or []) if item != s]


def scheduling_interval_to_cron(interval: str) -> str:
    """Convert a scheduling interval such as `5m`, `2h` or `1d` into a cron schedule.

    Raises:
        ValueError: if the interval is not `<number><m|h|d>` with a positive number.
    """
    match = _INTERVAL_PATTERN.match((interval or "").strip())
    if not match:
        raise ValueError(f"Invalid scheduling interval: {interval}")
    value, unit = int(match.group(1)), match.group(2)
    if value < 1:
        raise ValueError(f"Invalid scheduling interval: {interval}")
    if unit == "m":
        return f"*/{value} * * * *"
    if unit == "h":
        return f"0 */{value} * * *"
    return f"0 0 */{value} * *"
