"""Set-difference between freshly fetched messages and stored emails."""

from webmail_core.utils.logging import ContextLogger

from ..channels.utils import hash_string
from ..enums import Collection
from ..records import ReconcileResult, StoredEmail
from ..store import BatchOp

logger = ContextLogger(__name__)

SYNTHETIC_PREFIX = "synthetic-"


def synthetic_message_id(message):
    """
    Deterministic stand-in for a missing Message-ID header.

    The receive time only takes part when it came from the message itself;
    an estimated time changes on every fetch and would defeat deduplication.
    """
    received_at = "" if message.received_at_estimated else message.received_at.isoformat()
    fingerprint = "|".join(
        [
            message.account_id,
            message.from_address,
            message.to_address,
            message.subject,
            message.body,
            received_at,
        ]
    )
    return SYNTHETIC_PREFIX + hash_string(fingerprint)


class SyncReconciler:
    """Persists the messages a user has not stored yet.

    Deduplication is keyed on ``messageId`` across all of the user's fetched
    emails. Outgoing records keep their Message-ID under ``sentMessageId`` and
    never take part, so mail sent to one of the user's own accounts is still
    stored when it arrives.
    """

    def __init__(self, store):
        self.store = store

    def existing_message_ids(self, user_id):
        documents = self.store.query(Collection.EMAILS, {"userId": user_id})
        return {
            document.get("messageId")
            for _, document in documents
            if document.get("messageId") and not document.get("status")
        }

    def reconcile(self, user_id, fetched):
        """
        Insert every fetched message whose ``messageId`` is not stored yet.

        Args:
            user_id: Owner of the new records
            fetched: Iterable of NormalizedMessage

        Returns:
            ReconcileResult with the inserted and fetched counts

        Raises:
            StoreError: If reading the stored ids or the batch write fails.
                Nothing is reported as inserted in that case.
        """
        fetched = list(fetched)
        existing = self.existing_message_ids(user_id)

        seen = set()
        ops = []
        for message in fetched:
            message_id = message.message_id or synthetic_message_id(message)
            if message_id in existing or message_id in seen:
                continue
            seen.add(message_id)

            email = StoredEmail.from_message(user_id, message, message_id=message_id)
            ops.append(
                BatchOp.set(
                    Collection.EMAILS,
                    self.store.new_id(Collection.EMAILS),
                    email.to_document(),
                )
            )

        if ops:
            self.store.batch_write(ops)

        logger.info(
            "Reconciled fetched messages",
            extra={
                "user_id": user_id,
                "fetched": len(fetched),
                "inserted": len(ops),
            },
        )
        return ReconcileResult(inserted_count=len(ops), total_fetched=len(fetched))
