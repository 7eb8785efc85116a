"""Document store backed by a single JSON table in the Django database."""

import uuid

from django.db import DatabaseError, transaction

from webmail_core.utils.logging import ContextLogger

from ..exceptions import NotFoundError, StoreError
from ..models import StoredDocument
from .base import DocumentStore, sort_documents

logger = ContextLogger(__name__)


class DjangoDocumentStore(DocumentStore):
    """Stores every collection in ``StoredDocument`` rows.

    Equality filters become JSON key lookups (``data__userId=...``); batch
    writes run inside one ``transaction.atomic`` block.
    """

    def get(self, collection, doc_id):
        try:
            row = StoredDocument.objects.filter(
                collection=collection, doc_id=doc_id
            ).first()
        except DatabaseError as e:
            raise self._store_error("get", collection, e)
        return dict(row.data) if row else None

    def query(self, collection, filters=None, order_by=None):
        lookups = {f"data__{name}": value for name, value in (filters or {}).items()}
        try:
            rows = list(
                StoredDocument.objects.filter(collection=collection, **lookups)
                .order_by("created_at")
                .values_list("doc_id", "data")
            )
        except DatabaseError as e:
            raise self._store_error("query", collection, e)
        return sort_documents([(doc_id, dict(data)) for doc_id, data in rows], order_by)

    def set(self, collection, doc_id, data):
        try:
            self._set(collection, doc_id, data)
        except DatabaseError as e:
            raise self._store_error("set", collection, e)

    def update(self, collection, doc_id, data):
        try:
            with transaction.atomic():
                self._update(collection, doc_id, data)
        except DatabaseError as e:
            raise self._store_error("update", collection, e)

    def delete(self, collection, doc_id):
        try:
            StoredDocument.objects.filter(collection=collection, doc_id=doc_id).delete()
        except DatabaseError as e:
            raise self._store_error("delete", collection, e)

    def batch_write(self, ops):
        ops = list(ops)
        try:
            with transaction.atomic():
                for op in ops:
                    if op.kind == "set":
                        self._set(op.collection, op.doc_id, op.data)
                    elif op.kind == "update":
                        self._update(op.collection, op.doc_id, op.data)
                    else:
                        StoredDocument.objects.filter(
                            collection=op.collection, doc_id=op.doc_id
                        ).delete()
        except DatabaseError as e:
            raise self._store_error("batch_write", None, e, operations=len(ops))

    def new_id(self, collection):
        return uuid.uuid4().hex

    def ping(self):
        try:
            StoredDocument.objects.exists()
        except DatabaseError as e:
            raise self._store_error("ping", None, e)
        return True

    def _set(self, collection, doc_id, data):
        StoredDocument.objects.update_or_create(
            collection=collection, doc_id=doc_id, defaults={"data": data}
        )

    def _update(self, collection, doc_id, data):
        row = (
            StoredDocument.objects.select_for_update()
            .filter(collection=collection, doc_id=doc_id)
            .first()
        )
        if row is None:
            raise NotFoundError(f"{collection}/{doc_id} does not exist")
        row.data = {**row.data, **data}
        row.save(update_fields=["data", "updated_at"])

    def _store_error(self, operation, collection, error, **details):
        logger.error(
            "Document store operation failed",
            extra={
                "operation": operation,
                "collection": collection,
                "error": str(error),
                **details,
            },
        )
        return StoreError(f"{operation} on {collection or 'store'} failed: {error}")
