"""
Custom exceptions for the mail_sync application.

Every error raised by the sync and send core derives from ``MailSyncError``.
Each class carries the HTTP status and the generic message the API layer
returns to clients; stage and cause details are only for server-side logs.
"""


class MailSyncError(Exception):
    """Base exception for all errors in the mail_sync app."""

    status_code = 500
    public_message = "An unexpected error occurred"

    def to_payload(self):
        """Return the normalized error shape sent to API clients."""
        return {"error": self.public_message}


class ConfigError(MailSyncError):
    """Raised for missing or invalid account configuration or request data."""

    status_code = 400
    public_message = "Email account configuration is invalid or incomplete"

    def __init__(self, message=None, public_message=None):
        super().__init__(message or self.public_message)
        if public_message:
            self.public_message = public_message


class NotFoundError(ConfigError):
    """Raised when an account or email document does not exist."""

    status_code = 404
    public_message = "Resource not found"


class AuthorizationError(ConfigError):
    """Raised when a resource belongs to a different user than the caller."""

    status_code = 403
    public_message = "You are not allowed to access this resource"


class AuthenticationError(MailSyncError):
    """Raised when a bearer token is missing, expired or invalid."""

    status_code = 401
    public_message = "Authentication token is missing or invalid"


class CryptoError(MailSyncError):
    """Raised when credentials cannot be encrypted or decrypted."""

    status_code = 500
    public_message = "Stored credentials could not be decrypted"


class ChannelError(MailSyncError):
    """Base exception for mail server session failures.

    Args:
        stage: The protocol step that failed (``connect``, ``auth`` ...)
        cause: The underlying library exception, if any
    """

    status_code = 502
    protocol = "mail"
    public_message = "The mail server request failed"
    stage_messages = {}

    def __init__(self, stage, cause=None):
        self.stage = stage
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{self.protocol.upper()} {stage} failed{detail}")
        self.public_message = self.stage_messages.get(stage, self.public_message)


class ImapError(ChannelError):
    """Raised when an IMAP connect/auth/select/search/fetch step fails."""

    protocol = "imap"
    public_message = "Could not read the mailbox"
    stage_messages = {
        "connect": "Could not connect to the incoming mail server",
        "auth": "The incoming mail server rejected the credentials",
        "select": "Could not open the inbox",
        "search": "Could not list messages on the incoming mail server",
        "fetch": "Could not download messages from the incoming mail server",
    }


class SmtpError(ChannelError):
    """Raised when an SMTP connect/tls/handshake/auth/send step fails."""

    protocol = "smtp"
    public_message = "Could not send the email"
    stage_messages = {
        "connect": "Could not connect to the outgoing mail server",
        "tls": "Could not establish a secure connection to the outgoing mail server",
        "handshake": "The outgoing mail server did not answer the handshake",
        "auth": "The outgoing mail server rejected the credentials",
        "send": "The outgoing mail server refused the message",
    }


class TimeoutError(ChannelError):
    """Raised when a mail server session exceeds its timeout."""

    status_code = 504
    public_message = "The mail server did not respond in time"

    def __init__(self, stage, cause=None, protocol="mail"):
        self.protocol = protocol
        super().__init__(stage, cause)


class ParseError(MailSyncError):
    """Raised when a single message cannot be parsed.

    Never propagated past the fetcher; the message is skipped.
    """

    public_message = "A message could not be parsed"


class StoreError(MailSyncError):
    """Raised when a document store read or write fails."""

    status_code = 503
    public_message = "The mail storage is temporarily unavailable"


class SyncInProgressError(MailSyncError):
    """Raised when another sync already holds the lease for this account."""

    status_code = 409
    public_message = "A synchronization is already running for this account"
