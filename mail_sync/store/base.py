"""mail_sync.store.base

Narrow document-store interface consumed by the sync and send core.

The store is treated as an opaque key/value-document service: collections of
schemaless JSON-like documents, equality filtering, optional ordering and a
single atomic batch-write primitive. Concrete stores translate their own
failures into ``StoreError``.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

Document = Dict[str, Any]


@dataclass
class BatchOp:
    """One write inside an atomic batch.

    ``kind`` is ``set`` (create or replace), ``update`` (merge into an existing
    document) or ``delete``.
    """

    kind: str
    collection: str
    doc_id: str
    data: Document = field(default_factory=dict)

    KINDS = ("set", "update", "delete")

    def __post_init__(self):
        if self.kind not in self.KINDS:
            raise ValueError(f"Unknown batch operation: {self.kind}")

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Document) -> "BatchOp":
        return cls("set", collection, doc_id, dict(data))

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Document) -> "BatchOp":
        return cls("update", collection, doc_id, dict(data))

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "BatchOp":
        return cls("delete", collection, doc_id)


class DocumentStore(abc.ABC):
    """Abstract document store."""

    @abc.abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return a copy of the document, or None if it does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Tuple[str, Document]]:
        """Return ``(doc_id, document)`` pairs matching every equality filter.

        ``order_by`` names a field; prefix it with ``-`` for descending order.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or replace a document."""
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, collection: str, doc_id: str, data: Document) -> None:
        """Merge fields into an existing document; NotFoundError if absent."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def batch_write(self, ops: Iterable[BatchOp]) -> None:
        """Apply every operation or none of them."""
        raise NotImplementedError

    @abc.abstractmethod
    def new_id(self, collection: str) -> str:
        """Return a fresh store-assigned document id."""
        raise NotImplementedError

    def add(self, collection: str, data: Document) -> str:
        """Create a document under a store-assigned id and return the id."""
        doc_id = self.new_id(collection)
        self.set(collection, doc_id, data)
        return doc_id

    def ping(self) -> bool:
        """Cheap reachability check used by the health endpoint."""
        self.query("__health__", {"_": None})
        return True

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return f"<{self.__class__.__name__}>"


def sort_documents(
    items: List[Tuple[str, Document]], order_by: Optional[str]
) -> List[Tuple[str, Document]]:
    """Order ``(doc_id, document)`` pairs by one field, missing values first."""
    if not order_by:
        return items
    descending = order_by.startswith("-")
    name = order_by.lstrip("-")

    def key(item):
        value = item[1].get(name)
        return (value is not None, value if value is not None else "")

    return sorted(items, key=key, reverse=descending)
