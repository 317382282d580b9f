"""
FoundIt persistence
-------------------
Public API:

    MemoryStore(...)
    FirestoreStore(...)   # foundit_ai.store.firestore_store
    build_store(settings)
"""

from ..common.config import Settings
from .core import COLLECTIONS, MemoryStore, Store


def build_store(settings: Settings) -> Store:
    if settings.store_backend == "firestore":
        # Imported lazily so the memory back-end never needs Google credentials
        from .firestore_store import FirestoreStore
        return FirestoreStore(project=settings.project_id)
    return MemoryStore(snapshot_dir=settings.snapshot_dir)


__all__ = ["COLLECTIONS", "MemoryStore", "Store", "build_store"]
