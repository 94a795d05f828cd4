from .base import ReplicationBackend
from .volrep import VolRepBackend
from .volsync import VolSyncBackend
from .clusterdata import ClusterDataStore

__all__ = [
    "ReplicationBackend",
    "VolRepBackend",
    "VolSyncBackend",
    "ClusterDataStore",
]
