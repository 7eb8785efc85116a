"""In-process document store used by tests and local development."""

import copy
import threading
import uuid
from collections import defaultdict

from ..exceptions import NotFoundError
from .base import DocumentStore, sort_documents


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dict-of-dicts store.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._collections = defaultdict(dict)
        self._lock = threading.RLock()

    def get(self, collection, doc_id):
        with self._lock:
            document = self._collections[collection].get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def query(self, collection, filters=None, order_by=None):
        filters = filters or {}
        with self._lock:
            matches = [
                (doc_id, copy.deepcopy(document))
                for doc_id, document in self._collections[collection].items()
                if all(document.get(name) == value for name, value in filters.items())
            ]
        return sort_documents(matches, order_by)

    def set(self, collection, doc_id, data):
        with self._lock:
            self._collections[collection][doc_id] = copy.deepcopy(data)

    def update(self, collection, doc_id, data):
        with self._lock:
            if doc_id not in self._collections[collection]:
                raise NotFoundError(f"{collection}/{doc_id} does not exist")
            self._collections[collection][doc_id].update(copy.deepcopy(data))

    def delete(self, collection, doc_id):
        with self._lock:
            self._collections[collection].pop(doc_id, None)

    def batch_write(self, ops):
        ops = list(ops)
        with self._lock:
            # Apply to a scratch copy first so a failing op leaves no trace.
            staged = {
                name: dict(documents) for name, documents in self._collections.items()
            }
            for op in ops:
                documents = staged.setdefault(op.collection, {})
                if op.kind == "set":
                    documents[op.doc_id] = copy.deepcopy(op.data)
                elif op.kind == "update":
                    if op.doc_id not in documents:
                        raise NotFoundError(f"{op.collection}/{op.doc_id} does not exist")
                    merged = copy.deepcopy(documents[op.doc_id])
                    merged.update(copy.deepcopy(op.data))
                    documents[op.doc_id] = merged
                else:
                    documents.pop(op.doc_id, None)
            self._collections = defaultdict(dict, staged)

    def new_id(self, collection):
        return uuid.uuid4().hex

    def ping(self):
        return True

    def count(self, collection):
        with self._lock:
            return len(self._collections[collection])
