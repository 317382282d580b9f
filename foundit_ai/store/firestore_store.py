"""
Firestore-backed store. One Firestore collection per entity collection;
update() and insert_unless() run inside Firestore transactions.
"""

from __future__ import annotations

import logging
from typing import Optional

from google.cloud import firestore

from .core import Store, _model_for

logger = logging.getLogger(__name__)


class FirestoreStore(Store):

    def __init__(self, project: Optional[str] = None, client: Optional[firestore.Client] = None,
                 prefix: str = "foundit_"):
        self._db = client or firestore.Client(project=project)
        self._prefix = prefix

    def _col(self, collection: str):
        return self._db.collection(f"{self._prefix}{collection}")

    def get(self, collection, key):
        model = _model_for(collection)
        doc = self._col(collection).document(key).get()
        if not doc.exists:
            return None
        return model.model_validate(doc.to_dict())

    def all(self, collection):
        model = _model_for(collection)
        return [model.model_validate(doc.to_dict()) for doc in self._col(collection).stream()]

    def put(self, collection, key, value):
        _model_for(collection)
        self._col(collection).document(key).set(value.model_dump(mode="json"))

    def update(self, collection, key, fn):
        model = _model_for(collection)
        ref = self._col(collection).document(key)

        @firestore.transactional
        def _apply(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            current = model.model_validate(snapshot.to_dict())
            updated = fn(current)
            if updated is None:
                return current
            transaction.set(ref, updated.model_dump(mode="json"))
            return updated

        return _apply(self._db.transaction())

    def insert_unless(self, collection, key, value, conflict):
        model = _model_for(collection)
        col = self._col(collection)
        ref = col.document(key)

        @firestore.transactional
        def _apply(transaction):
            if ref.get(transaction=transaction).exists:
                return False
            for doc in col.stream(transaction=transaction):
                if conflict(model.model_validate(doc.to_dict())):
                    return False
            transaction.set(ref, value.model_dump(mode="json"))
            return True

        inserted = _apply(self._db.transaction())
        if not inserted:
            logger.info(f"Skipped insert into {collection}: conflicting entity exists")
        return inserted
