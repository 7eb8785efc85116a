"""Outbound send service.

Tracks every outgoing email in the ``emails`` collection: the record is
``sending`` while the SMTP session runs and ends as ``sent`` or ``error``.
"""

from django.utils import timezone

from ..enums import Collection, SendStatus
from ..exceptions import AuthorizationError, ConfigError, MailSyncError, NotFoundError
from ..records import OutboundAttachment, OutboundMessage, StoredEmail
from .base_service import BaseService


class SendService(BaseService):
    """Sends a message from one of the caller's accounts."""

    def __init__(self, store, cipher, sender):
        super().__init__(store, cipher)
        self.sender = sender

    def send(
        self,
        user_id,
        account_id,
        to,
        subject,
        content,
        attachments=None,
        email_id=None,
    ):
        """Send a message and persist its delivery status.

        Args:
        ----
            user_id: Verified caller
            account_id: Account to send from
            to: Recipient address, comma-separated addresses or a list
            subject: Subject line
            content: HTML body
            attachments: Optional list of ``{filename, content, contentType}``
                dicts with base64 content
            email_id: Existing ``sending`` record to update; created when omitted

        Returns:
        -------
            SendResult. ``status_persisted`` is False when the message went out
            but the ``sent`` status could not be written.

        Raises:
        ------
            SmtpError, TimeoutError, CryptoError: After marking the record
                ``status=error``

        """
        account = self.load_account(user_id, account_id)
        message = OutboundMessage(
            to=self._recipients(to),
            subject=subject or "",
            html_body=content or "",
            attachments=[
                OutboundAttachment.from_payload(item) for item in attachments or []
            ],
        )

        with self.logger.context(user_id=user_id, account_id=account_id):
            if email_id:
                self._check_email_owner(user_id, email_id)
            else:
                email_id = self._create_outgoing(user_id, account, message)

            try:
                account.require_smtp()
                password = self.decrypt_password(account)
                result = self.sender.send(account, password, message)
            except Exception as e:
                self.log_transaction(
                    "send", "error", {"email_id": email_id, "error": str(e)}
                )
                self._mark_failed(email_id, e)
                raise

            result.email_id = email_id
            result.status_persisted = self._mark_sent(email_id, result.message_id)
            self.log_transaction(
                "send",
                "success",
                {"email_id": email_id, "status_persisted": result.status_persisted},
            )
            return result

    def _recipients(self, to):
        if isinstance(to, str):
            to = to.split(",")
        recipients = [address.strip() for address in to or [] if address and address.strip()]
        if not recipients:
            raise ConfigError(
                "No recipient given", public_message="At least one recipient is required"
            )
        return recipients

    def _check_email_owner(self, user_id, email_id):
        document = self.store.get(Collection.EMAILS, email_id)
        if document is None:
            raise NotFoundError(f"Email {email_id} not found")
        if str(document.get("userId")) != str(user_id):
            raise AuthorizationError(f"User {user_id} does not own email {email_id}")

    def _create_outgoing(self, user_id, account, message):
        email = StoredEmail.outgoing(
            user_id, account, ", ".join(message.to), message.subject, message.html_body
        )
        return self.store.add(Collection.EMAILS, email.to_document())

    def _mark_sent(self, email_id, message_id):
        """Record a successful delivery; returns False if the write failed."""
        changes = {
            "status": SendStatus.SENT.value,
            "error": None,
            "sentMessageId": message_id,
            "timestamp": timezone.now().isoformat(),
        }
        try:
            self.store.update(Collection.EMAILS, email_id, changes)
        except MailSyncError as e:
            self.logger.error(
                "Email was sent but its status could not be saved",
                extra={"email_id": email_id, "error": str(e)},
            )
            return False
        return True

    def _mark_failed(self, email_id, error):
        """Record a failed delivery without masking ``error``."""
        message = getattr(error, "public_message", None) or MailSyncError.public_message
        try:
            self.store.update(
                Collection.EMAILS,
                email_id,
                {"status": SendStatus.ERROR.value, "error": message},
            )
        except MailSyncError as e:
            self.logger.error(
                "Could not record send failure",
                extra={"email_id": email_id, "error": str(e)},
            )
