from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

__all__ = ["StoredDocument"]


class StoredDocument(models.Model):
    """One schemaless document of the relational document-store backend."""

    collection = models.CharField(max_length=100)
    doc_id = models.CharField(max_length=64)
    data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "mail_sync_documents"
        unique_together = ["collection", "doc_id"]

    def __str__(self):
        return f"{self.collection}/{self.doc_id}"
