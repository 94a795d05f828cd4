from .base import BaseStore
from .kube import KubernetesStore
from .vrg import VolumeReplicationGroup

__all__ = [
    "BaseStore",
    "KubernetesStore",
    "VolumeReplicationGroup",
]
