"""VolumeReplicationGroup reconciliation.

Submodules are imported directly (`ramen.reconciler.vrg`); the backends
depend on `conditions` and `context` from this package.
"""
