"""Typed records exchanged between the sync/send core and the document store.

Documents keep the camelCase field names shared with the web UI. Conversion
and validation happen here, at the store boundary, so services only ever see
fully populated records.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .config import get_config
from .enums import Folder, SendStatus
from .exceptions import ConfigError


def _coerce_datetime(value: Any) -> Optional[datetime]:
    """Turn an ISO string or datetime into an aware datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parse_datetime(str(value))
        if parsed is None:
            return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class MailAccount:
    """A user's configured mail identity (``emailAccounts`` collection)."""

    id: str
    user_id: str
    email: str
    encrypted_password: str = field(repr=False)
    display_name: str = ""
    imap_host: str = ""
    imap_port: int = 993
    imap_use_tls: bool = True
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_use_tls: bool = True
    last_sync_at: Optional[datetime] = None
    last_sync_error: str = ""

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "MailAccount":
        """Build an account from a stored document, rejecting incomplete ones."""
        missing = [
            name
            for name in ("userId", "email", "encryptedPassword")
            if not data.get(name)
        ]
        if missing:
            raise ConfigError(
                f"Account {doc_id} is missing required fields: {', '.join(missing)}"
            )

        try:
            imap_port = int(data.get("imapPort") or get_config("IMAP_DEFAULT_PORT"))
            smtp_port = int(data.get("smtpPort") or get_config("SMTP_DEFAULT_PORT"))
        except (TypeError, ValueError):
            raise ConfigError(f"Account {doc_id} has an invalid port number")

        return cls(
            id=doc_id,
            user_id=str(data["userId"]),
            email=str(data["email"]).strip(),
            encrypted_password=str(data["encryptedPassword"]),
            display_name=data.get("displayName") or "",
            imap_host=(data.get("imapHost") or "").strip(),
            imap_port=imap_port,
            imap_use_tls=bool(data.get("imapUseTLS", True)),
            smtp_host=(data.get("smtpHost") or "").strip(),
            smtp_port=smtp_port,
            smtp_use_tls=bool(data.get("smtpUseTLS", True)),
            last_sync_at=_coerce_datetime(data.get("lastSyncAt")),
            last_sync_error=data.get("lastSyncError") or "",
        )

    def to_document(self) -> Dict[str, Any]:
        document = {
            "userId": self.user_id,
            "displayName": self.display_name,
            "email": self.email,
            "encryptedPassword": self.encrypted_password,
            "imapHost": self.imap_host,
            "imapPort": self.imap_port,
            "imapUseTLS": self.imap_use_tls,
            "smtpHost": self.smtp_host,
            "smtpPort": self.smtp_port,
            "smtpUseTLS": self.smtp_use_tls,
        }
        if self.last_sync_at:
            document["lastSyncAt"] = _isoformat(self.last_sync_at)
            document["lastSyncError"] = self.last_sync_error
        return document

    def to_public_dict(self) -> Dict[str, Any]:
        """Account fields safe to return to API clients."""
        data = self.to_document()
        data.pop("encryptedPassword")
        data["id"] = self.id
        return data

    def require_imap(self) -> None:
        if not self.imap_host:
            raise ConfigError(
                f"Account {self.id} has no IMAP host configured",
                public_message="The incoming mail server is not configured",
            )

    def require_smtp(self) -> None:
        if not self.smtp_host:
            raise ConfigError(
                f"Account {self.id} has no SMTP host configured",
                public_message="The outgoing mail server is not configured",
            )


@dataclass
class Attachment:
    filename: str
    content_type: str
    size: int
    content: Optional[str] = None  # base64, None when truncated
    truncated: bool = False

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            filename=data.get("filename") or "",
            content_type=data.get("contentType") or "",
            size=int(data.get("size") or 0),
            content=data.get("content") or None,
            truncated=bool(data.get("truncated", False)),
        )

    def to_document(self) -> Dict[str, Any]:
        document = {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
            "content": self.content or "",
        }
        if self.truncated:
            document["truncated"] = True
        return document


@dataclass
class NormalizedMessage:
    """One parsed inbound message. Lives only for the duration of a sync."""

    message_id: str
    from_address: str
    to_address: str
    subject: str
    body: str
    received_at: datetime
    account_id: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    # True when no usable Date header was found and received_at is a guess.
    received_at_estimated: bool = False


@dataclass
class StoredEmail:
    """A persisted email (``emails`` collection)."""

    id: Optional[str]
    user_id: str
    account_id: str
    message_id: str
    from_address: str
    to_address: str
    subject: str
    content: str
    timestamp: datetime
    read: bool = False
    starred: bool = False
    folder: str = Folder.INBOX
    attachments: List[Attachment] = field(default_factory=list)
    status: Optional[str] = None
    error: Optional[str] = None
    sent_message_id: Optional[str] = None

    @classmethod
    def from_message(
        cls, user_id: str, message: NormalizedMessage, message_id: str = None
    ) -> "StoredEmail":
        """Build the inbox record for a freshly fetched message."""
        return cls(
            id=None,
            user_id=user_id,
            account_id=message.account_id,
            message_id=message_id or message.message_id,
            from_address=message.from_address,
            to_address=message.to_address,
            subject=message.subject,
            content=message.body,
            timestamp=message.received_at,
            folder=Folder.INBOX,
            attachments=list(message.attachments),
        )

    @classmethod
    def outgoing(
        cls, user_id: str, account: MailAccount, to: str, subject: str, content: str
    ) -> "StoredEmail":
        """Build the sent-folder record created before an SMTP submission."""
        return cls(
            id=None,
            user_id=user_id,
            account_id=account.id,
            message_id="",
            from_address=account.email,
            to_address=to,
            subject=subject,
            content=content,
            timestamp=timezone.now(),
            read=True,
            folder=Folder.SENT,
            status=SendStatus.SENDING,
        )

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "StoredEmail":
        if not data.get("userId"):
            raise ConfigError(f"Email {doc_id} has no owner")
        return cls(
            id=doc_id,
            user_id=str(data["userId"]),
            account_id=data.get("accountId") or "",
            message_id=data.get("messageId") or "",
            from_address=data.get("from") or "",
            to_address=data.get("to") or "",
            subject=data.get("subject") or "",
            content=data.get("content") or "",
            timestamp=_coerce_datetime(data.get("timestamp")) or timezone.now(),
            read=bool(data.get("read", False)),
            starred=bool(data.get("starred", False)),
            folder=data.get("folder") or Folder.INBOX,
            attachments=[
                Attachment.from_document(item) for item in data.get("attachments") or []
            ],
            status=data.get("status"),
            error=data.get("error"),
            sent_message_id=data.get("sentMessageId"),
        )

    def to_document(self) -> Dict[str, Any]:
        document = {
            "userId": self.user_id,
            "accountId": self.account_id,
            "messageId": self.message_id,
            "from": self.from_address,
            "to": self.to_address,
            "subject": self.subject,
            "content": self.content,
            "timestamp": _isoformat(self.timestamp),
            "read": self.read,
            "starred": self.starred,
            "folder": str(self.folder),
            "attachments": [item.to_document() for item in self.attachments],
        }
        if self.status is not None:
            document["status"] = str(self.status)
        if self.error is not None:
            document["error"] = self.error
        if self.sent_message_id is not None:
            document["sentMessageId"] = self.sent_message_id
        return document


@dataclass
class OutboundAttachment:
    filename: str
    content: bytes = field(repr=False)
    content_type: str = "application/octet-stream"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "OutboundAttachment":
        """Decode an attachment sent by the UI.

        ``content`` is base64, optionally as a ``data:<type>;base64,`` URL.
        """
        filename = data.get("filename") or data.get("name") or ""
        encoded = data.get("content") or ""
        content_type = (
            data.get("contentType") or data.get("type") or "application/octet-stream"
        )

        if encoded.startswith("data:") and "," in encoded:
            header, encoded = encoded.split(",", 1)
            declared = header[len("data:"):].split(";", 1)[0]
            if declared and content_type == "application/octet-stream":
                content_type = declared

        if not filename:
            raise ConfigError(
                "Attachment without a filename",
                public_message="Every attachment needs a filename",
            )
        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ConfigError(
                f"Attachment {filename} is not valid base64",
                public_message="An attachment could not be decoded",
            )
        return cls(filename=filename, content=content, content_type=content_type)


@dataclass
class OutboundMessage:
    to: List[str]
    subject: str
    html_body: str
    attachments: List[OutboundAttachment] = field(default_factory=list)


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None
    message_id: str = ""
    email_id: Optional[str] = None
    status_persisted: bool = True

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "success": self.success,
            "messageId": self.message_id,
            "emailId": self.email_id,
            "statusPersisted": self.status_persisted,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class ReconcileResult:
    inserted_count: int
    total_fetched: int


@dataclass
class SyncResult:
    inserted_count: int
    total_fetched: int
    parse_failures: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "insertedCount": self.inserted_count,
            "totalFetched": self.total_fetched,
            "parseFailures": self.parse_failures,
        }
