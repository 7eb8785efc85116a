"""Mail account configuration service.

Server side of the account settings form: passwords are encrypted here and
never leave the service again.
"""

from ..config import get_config
from ..enums import Collection, Protocol
from ..exceptions import ConfigError
from ..records import MailAccount
from .base_service import BaseService

# Fields a client may change on an existing account.
EDITABLE_FIELDS = (
    "display_name",
    "email",
    "imap_host",
    "imap_port",
    "imap_use_tls",
    "smtp_host",
    "smtp_port",
    "smtp_use_tls",
)


class AccountService(BaseService):
    """Create, update, delete, list and test mail accounts."""

    def __init__(self, store, cipher, fetcher=None, sender=None):
        super().__init__(store, cipher)
        self.fetcher = fetcher
        self.sender = sender

    def list_accounts(self, user_id):
        """Return the caller's accounts ordered by address, without passwords."""
        documents = self.store.query(
            Collection.ACCOUNTS, {"userId": str(user_id)}, order_by="email"
        )
        return [MailAccount.from_document(doc_id, data) for doc_id, data in documents]

    def create_account(self, user_id, email, password, **fields):
        """Store a new account with its password encrypted.

        Args:
        ----
            user_id: Owner of the account
            email: Address used as login and sender
            password: Plaintext password, encrypted before it is stored
            **fields: Any of ``EDITABLE_FIELDS``

        """
        if not email or not password:
            raise ConfigError(
                "Email and password are required",
                public_message="An email address and a password are required",
            )

        account = MailAccount(
            id=self.store.new_id(Collection.ACCOUNTS),
            user_id=str(user_id),
            email=email.strip(),
            encrypted_password=self.cipher.encrypt(password),
            imap_port=get_config("IMAP_DEFAULT_PORT"),
            smtp_port=get_config("SMTP_DEFAULT_PORT"),
        )
        self._apply(account, fields)

        self.store.set(Collection.ACCOUNTS, account.id, account.to_document())
        self.log_transaction(
            "create_account", "success", {"account_id": account.id, "user_id": user_id}
        )
        return account

    def update_account(self, user_id, account_id, password=None, **fields):
        """Apply changes to an account; a new password is re-encrypted."""
        account = self.load_account(user_id, account_id)
        self._apply(account, fields)
        if password:
            account.encrypted_password = self.cipher.encrypt(password)

        self.store.update(Collection.ACCOUNTS, account.id, account.to_document())
        self.log_transaction(
            "update_account",
            "success",
            {"account_id": account.id, "password_changed": bool(password)},
        )
        return account

    def delete_account(self, user_id, account_id):
        account = self.load_account(user_id, account_id)
        self.store.delete(Collection.ACCOUNTS, account.id)
        self.log_transaction("delete_account", "success", {"account_id": account.id})

    def test_connection(self, protocol, host, port, use_tls, username, password):
        """Check that a server accepts the given credentials.

        Returns:
        -------
            True on success

        Raises:
        ------
            ConfigError: For an unknown protocol or a missing host
            ImapError, SmtpError, TimeoutError: If the server check fails

        """
        if protocol == Protocol.IMAP:
            adapter = self.fetcher
        elif protocol == Protocol.SMTP:
            adapter = self.sender
        else:
            raise ConfigError(
                f"Unknown protocol {protocol}",
                public_message="Protocol must be 'imap' or 'smtp'",
            )
        if not host:
            raise ConfigError("Missing host", public_message="A server host is required")

        with self.logger.context(protocol=str(protocol), server=host):
            adapter.test_connection(host, int(port), bool(use_tls), username, password)
            self.logger.info("Connection test succeeded")
        return True

    def _apply(self, account, fields):
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ConfigError(f"Unknown account fields: {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            if value is not None:
                setattr(account, name, value.strip() if isinstance(value, str) else value)
