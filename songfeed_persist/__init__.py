"""
Persistence facade exposing the snapshot cache store.
"""

from .stores.snapshot_store import PersistHealth, SnapshotStore
from .utils.paths import default_snapshot_path, ensure_structure, resolve_root

__all__ = [
    "PersistHealth",
    "SnapshotStore",
    "default_snapshot_path",
    "ensure_structure",
    "resolve_root",
]
