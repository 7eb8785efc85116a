"""Base service module with common functionality for mail_sync services.

This module provides account loading with ownership checks, credential
decryption and consistent transaction logging for every service.
"""

from django.utils import timezone

from webmail_core.utils.logging import ContextLogger

from ..enums import Collection
from ..exceptions import AuthorizationError, ConfigError, CryptoError, NotFoundError
from ..records import MailAccount


class BaseService:
    """Base service class with common functionality for mail services."""

    def __init__(self, store, cipher=None):
        """Initialize service with its collaborators.

        Args:
        ----
            store: DocumentStore holding accounts and emails
            cipher: CredentialCipher used to decrypt account passwords

        """
        self.store = store
        self.cipher = cipher
        self.logger = ContextLogger(self.__class__.__module__)

    def load_account(self, user_id, account_id):
        """Get a mail account owned by ``user_id``.

        Ownership is checked before anything else touches the account, so a
        foreign account id never leads to network I/O.

        Raises:
        ------
            ConfigError: If no account id is given or the account is incomplete
            NotFoundError: If the account doesn't exist
            AuthorizationError: If the account belongs to another user

        """
        if not account_id:
            raise ConfigError(
                "Missing account id", public_message="An account id is required"
            )

        document = self.store.get(Collection.ACCOUNTS, account_id)
        if document is None:
            self.logger.warning(
                "Email account not found", extra={"account_id": account_id},
            )
            raise NotFoundError(f"Email account with ID {account_id} not found")

        if str(document.get("userId")) != str(user_id):
            self.logger.warning(
                "Email account belongs to another user",
                extra={"account_id": account_id, "user_id": user_id},
            )
            raise AuthorizationError(
                f"User {user_id} does not own email account {account_id}"
            )

        return MailAccount.from_document(account_id, document)

    def decrypt_password(self, account):
        """Decrypt the account password immediately before use."""
        try:
            return self.cipher.decrypt(account.encrypted_password)
        except CryptoError:
            self.logger.error(
                "Could not decrypt account password", extra={"account_id": account.id},
            )
            raise

    def log_transaction(self, action, status, details=None):
        """Log a transaction with consistent format.

        Args:
        ----
            action: The action being performed
            status: Status of the transaction ('success', 'error', etc.)
            details: Optional dictionary of additional details

        """
        log_data = {
            "action": action,
            "status": status,
            "timestamp": timezone.now().isoformat(),
        }

        if details:
            log_data.update(details)

        if status == "error":
            self.logger.error(f"Error during {action}", extra=log_data)
        else:
            self.logger.info(f"Completed {action}", extra=log_data)

        return log_data
