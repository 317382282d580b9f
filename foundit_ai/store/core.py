"""
FoundIt Store Core
------------------
Entity collections keyed by id. Every mutation is a read-modify-write of a
single entity so that concurrent sessions touching different records never
clobber each other.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from ..common.schemas import ChatMessage, Handover, Match, Report, User

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, Type[BaseModel]] = {
    "users": User,
    "reports": Report,
    "matches": Match,
    "messages": ChatMessage,
    "handovers": Handover,
}

Updater = Callable[[BaseModel], Optional[BaseModel]]
Conflict = Callable[[BaseModel], bool]


class Store(ABC):
    """Interface shared by the memory and Firestore back-ends."""

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[BaseModel]:
        ...

    @abstractmethod
    def all(self, collection: str) -> List[BaseModel]:
        ...

    @abstractmethod
    def put(self, collection: str, key: str, value: BaseModel) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, key: str, fn: Updater) -> Optional[BaseModel]:
        """
        Atomically apply fn to the stored entity.

        fn receives the current value and returns the replacement, or None to
        leave it untouched. Returns the value stored after the call, or None
        when the key does not exist.
        """

    @abstractmethod
    def insert_unless(self, collection: str, key: str, value: BaseModel,
                      conflict: Conflict) -> bool:
        """Insert value unless an existing entity satisfies conflict. Atomic."""


def _model_for(collection: str) -> Type[BaseModel]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise KeyError(f"Unknown collection: {collection}") from None


class MemoryStore(Store):
    """
    Dict-of-dicts store guarded by one re-entrant lock.

    With a snapshot_dir every collection is loaded from <dir>/<name>.json on
    startup and the mutated collection's file is rewritten after each change.
    """

    def __init__(self, snapshot_dir: Optional[str] = None):
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, BaseModel]] = {name: {} for name in COLLECTIONS}
        self._snapshot_dir = Path(snapshot_dir) if snapshot_dir else None

        if self._snapshot_dir:
            self._snapshot_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    def _key_of(self, collection: str, value: BaseModel) -> str:
        return value.match_id if collection == "handovers" else value.id

    def _load(self) -> None:
        for name, model in COLLECTIONS.items():
            path = self._snapshot_dir / f"{name}.json"
            if not path.exists():
                continue
            try:
                rows = json.loads(path.read_text(encoding="utf-8"))
                for row in rows:
                    value = model.model_validate(row)
                    self._data[name][self._key_of(name, value)] = value
                logger.info(f"Loaded {len(rows)} {name} from {path}")
            except (ValueError, OSError) as e:
                # A corrupt snapshot starts that collection empty, like a cleared browser store
                logger.error(f"Could not load snapshot {path}: {e}")

    def _flush(self, collection: str) -> None:
        if not self._snapshot_dir:
            return
        path = self._snapshot_dir / f"{collection}.json"
        tmp = path.with_suffix(".json.tmp")
        rows = [v.model_dump(mode="json") for v in self._data[collection].values()]
        tmp.write_text(json.dumps(rows, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def get(self, collection, key):
        _model_for(collection)
        with self._lock:
            return self._data[collection].get(key)

    def all(self, collection):
        _model_for(collection)
        with self._lock:
            return list(self._data[collection].values())

    def put(self, collection, key, value):
        _model_for(collection)
        with self._lock:
            self._data[collection][key] = value
            self._flush(collection)

    def update(self, collection, key, fn):
        _model_for(collection)
        with self._lock:
            current = self._data[collection].get(key)
            if current is None:
                return None
            updated = fn(current)
            if updated is None:
                return current
            self._data[collection][key] = updated
            self._flush(collection)
            return updated

    def insert_unless(self, collection, key, value, conflict):
        _model_for(collection)
        with self._lock:
            if key in self._data[collection]:
                return False
            if any(conflict(existing) for existing in self._data[collection].values()):
                return False
            self._data[collection][key] = value
            self._flush(collection)
            return True
