"""Bulk operations on stored emails."""

from ..enums import Collection
from ..exceptions import AuthorizationError, ConfigError, NotFoundError
from ..store import BatchOp
from .base_service import BaseService


class MailboxService(BaseService):
    """Mailbox-wide updates driven by the email list UI."""

    def set_selected(self, user_id, email_ids, selected):
        """Set the ``selected`` flag on several emails in one batch.

        Every id must exist and belong to ``user_id``; otherwise nothing is
        written.

        Returns:
        -------
            Number of emails updated

        """
        if not isinstance(selected, bool):
            raise ConfigError("selected must be a boolean")

        ops = []
        for email_id in dict.fromkeys(email_ids):
            document = self.store.get(Collection.EMAILS, email_id)
            if document is None:
                raise NotFoundError(f"Email {email_id} not found")
            if str(document.get("userId")) != str(user_id):
                raise AuthorizationError(f"User {user_id} does not own email {email_id}")
            ops.append(BatchOp.update(Collection.EMAILS, email_id, {"selected": selected}))

        if ops:
            self.store.batch_write(ops)
        self.log_transaction(
            "set_selected", "success", {"user_id": user_id, "updated": len(ops)}
        )
        return len(ops)
