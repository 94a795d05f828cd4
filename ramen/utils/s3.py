"""Object key helpers for PV cluster data kept in S3 stores."""

import re

_KEY_PART_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

PV_OBJECT_SUFFIX = ".json"


def _check_part(value: str, what: str) -> str:
    if not value or not _KEY_PART_PATTERN.match(value):
        raise ValueError(f"Invalid {what} for an object key: {value!r}")
    return value


def build_vrg_prefix(namespace: str, vrg_name: str, prefix: str = "") -> str:
    """Build the key prefix under which a VolumeReplicationGroup keeps its PVs.

    Args:
        namespace: VolumeReplicationGroup namespace
        vrg_name: VolumeReplicationGroup name
        prefix: Optional profile wide prefix (e.g., "ramen/")

    Returns:
        Key prefix string, e.g. "ramen/my-ns/my-vrg/"
    """
    if prefix and not prefix.endswith("/"):
        prefix = prefix + "/"
    return f"{prefix}{_check_part(namespace, 'namespace')}/{_check_part(vrg_name, 'name')}/"


def build_pv_object_key(
    namespace: str, vrg_name: str, pv_name: str, prefix: str = ""
) -> str:
    """Build the object key of one PV, e.g. "my-ns/my-vrg/pv-0001.json"."""
    return (
        build_vrg_prefix(namespace, vrg_name, prefix)
        + _check_part(pv_name, "PV name")
        + PV_OBJECT_SUFFIX
    )


def pv_name_from_key(key: str) -> str:
    """Return the PV name an object key was built from.

    Raises:
        ValueError: If the key is not a PV object key
    """
    name = key.rsplit("/", 1)[-1]
    if not name.endswith(PV_OBJECT_SUFFIX) or len(name) == len(PV_OBJECT_SUFFIX):
        raise ValueError(f"Not a PV object key: {key}")
    return name[: -len(PV_OBJECT_SUFFIX)]
