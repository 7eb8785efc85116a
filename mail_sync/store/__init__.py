"""Document store interface and its implementations."""

from .base import BatchOp, DocumentStore
from .memory import InMemoryDocumentStore

__all__ = ["BatchOp", "DocumentStore", "InMemoryDocumentStore"]
