from . import vrg, pvc, probes

__all__ = [
    "vrg",
    "pvc",
    "probes",
]
