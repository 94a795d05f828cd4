from .selector import LabelSelector, LabelSelectorRequirement
from .vrg_spec import (
    VolumeReplicationGroupSpec,
    VRGAsyncSpec,
    VRGSyncSpec,
    VRGVolSyncSpec,
    PRIMARY,
    SECONDARY,
)

__all__ = [
    "LabelSelector",
    "LabelSelectorRequirement",
    "VolumeReplicationGroupSpec",
    "VRGAsyncSpec",
    "VRGSyncSpec",
    "VRGVolSyncSpec",
    "PRIMARY",
    "SECONDARY",
]
