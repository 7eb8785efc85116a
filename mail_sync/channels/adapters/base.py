"""mail_sync.channels.adapters.base

Adapter interface for the two mail transports.

Adapters are stateless with respect to accounts: the account record and the
decrypted password are passed on every call, so one adapter instance can be
shared by every service built from the ``ServiceContainer``. Each call opens
its own session and releases it before returning.
"""

from __future__ import annotations

import abc
from datetime import datetime
from typing import Callable, Iterator, Optional

from ...records import MailAccount, NormalizedMessage, OutboundMessage, SendResult


class BaseAdapter(abc.ABC):
    """Base class for all adapters, handling common initialization."""

    protocol = "mail"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    @abc.abstractmethod
    def test_connection(
        self, host: str, port: int, use_tls: bool, username: str, password: str
    ) -> bool:
        """Open a session, authenticate and close it again.

        Raises the adapter's ``ChannelError`` subclass on failure.
        """
        raise NotImplementedError

    def __repr__(self) -> str:  # pragma: no cover – cosmetic
        return f"<{self.__class__.__name__} timeout={self.timeout}>"


class BaseInboundAdapter(BaseAdapter):
    """Abstract base class for receiving messages (IMAP)."""

    @abc.abstractmethod
    def fetch_since(
        self,
        account: MailAccount,
        password: str,
        cutoff: datetime,
        on_parse_error: Optional[Callable[[Exception], None]] = None,
    ) -> Iterator[NormalizedMessage]:
        """Yield every parseable inbox message received since ``cutoff``."""
        raise NotImplementedError


class BaseOutboundAdapter(BaseAdapter):
    """Abstract base class for sending messages (SMTP)."""

    @abc.abstractmethod
    def send(
        self, account: MailAccount, password: str, message: OutboundMessage
    ) -> SendResult:
        """Submit one message through the account's outgoing server."""
        raise NotImplementedError
