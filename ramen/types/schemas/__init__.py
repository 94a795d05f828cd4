from .selector import LabelSelectorSchema, LabelSelectorRequirementSchema
from .vrg_spec import (
    VolumeReplicationGroupSpecSchema,
    VRGAsyncSpecSchema,
    VRGSyncSpecSchema,
    VRGVolSyncSpecSchema,
)

__all__ = [
    "LabelSelectorSchema",
    "LabelSelectorRequirementSchema",
    "VolumeReplicationGroupSpecSchema",
    "VRGAsyncSpecSchema",
    "VRGSyncSpecSchema",
    "VRGVolSyncSpecSchema",
]
