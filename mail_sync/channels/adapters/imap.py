"""
IMAP adapter implementation for mailbox synchronization.

This module provides the ``ImapFetcher``, which connects to an account's
incoming mail server, lists inbox messages received since a cutoff date and
yields them parsed, one at a time.
"""

import imaplib
import socket
import time
from contextlib import contextmanager
from datetime import datetime, timezone as dt_timezone

from webmail_core.utils.logging import ContextLogger

from ...config import get_config
from ...enums import ImapStage, Protocol
from ...exceptions import ImapError, ParseError, TimeoutError
from ...utils.email_parser import MailParser
from .. import utils
from .base import BaseInboundAdapter

logger = ContextLogger(__name__)

FETCH_ITEMS = "(INTERNALDATE RFC822)"

# Library errors that end a session at any stage
IMAP_ERRORS = (imaplib.IMAP4.error, OSError)


class ImapFetcher(BaseInboundAdapter):
    """
    IMAP protocol adapter for mailbox synchronization.

    Messages are fetched in pipelined chunks of ``batch_size`` sequence
    numbers, so at most that many bodies are held in memory at once. The
    session is opened read-only and is logged out on every exit path,
    including when the caller stops iterating early.
    """

    protocol = Protocol.IMAP

    def __init__(
        self,
        parser=None,
        timeout=None,
        batch_size=None,
        max_messages=None,
        verify_ssl=None,
    ):
        super().__init__(timeout if timeout is not None else get_config("IMAP_TIMEOUT"))
        self.parser = parser or MailParser()
        self.batch_size = batch_size or get_config("FETCH_BATCH_SIZE")
        self.max_messages = max_messages or get_config("MAX_MESSAGES_PER_SYNC")
        self.verify_ssl = (
            verify_ssl if verify_ssl is not None else get_config("IMAP_VERIFY_SSL")
        )

    def fetch_since(self, account, password, cutoff, on_parse_error=None):
        """
        Yield the inbox messages received since ``cutoff``.

        Args:
            account: MailAccount with IMAP server settings
            password: Decrypted account password
            cutoff: Oldest receive date to include
            on_parse_error: Optional callback invoked with each ParseError

        Yields:
            NormalizedMessage for every message that could be parsed

        Raises:
            ImapError: If connect, auth, select, search or fetch fails
            TimeoutError: If the server stops answering
        """
        account.require_imap()

        with self._session(
            account.imap_host,
            account.imap_port,
            account.imap_use_tls,
            account.email,
            password,
        ) as server:
            self._select_inbox(server)
            sequence_numbers = self._search_since(server, cutoff)

            if self.max_messages and len(sequence_numbers) > self.max_messages:
                # Keep the most recent messages
                sequence_numbers = sequence_numbers[-self.max_messages :]

            logger.info(
                f"Found {len(sequence_numbers)} messages since {cutoff.date()}",
                extra={"account_id": account.id},
            )

            for chunk in utils.chunked(sequence_numbers, self.batch_size):
                for raw_message, internal_date in self._fetch_chunk(server, chunk):
                    try:
                        yield self.parser.parse(raw_message, account.id, internal_date)
                    except ParseError as e:
                        logger.warning(
                            "Skipping unparseable message",
                            extra={"account_id": account.id, "error": str(e)},
                        )
                        if on_parse_error is not None:
                            on_parse_error(e)

    def test_connection(self, host, port, use_tls, username, password):
        """
        Log in to the server and log out again.

        Returns:
            True if the server accepted the credentials

        Raises:
            ImapError: If connection or authentication fails
        """
        with self._session(host, port, use_tls, username, password) as server:
            self._call(server.noop, ImapStage.CONNECT)
        return True

    @contextmanager
    def _session(self, host, port, use_tls, username, password):
        server = self._connect(host, port, use_tls)
        try:
            self._call(server.login, ImapStage.AUTH, username, password)
            logger.debug("IMAP authentication successful", extra={"server": host})
            yield server
        finally:
            self._disconnect(server)

    def _connect(self, host, port, use_tls):
        logger.info(
            "Connecting to IMAP server",
            extra={"server": host, "port": port, "use_tls": use_tls},
        )
        try:
            if use_tls:
                return imaplib.IMAP4_SSL(
                    host,
                    port,
                    ssl_context=utils.create_ssl_context(self.verify_ssl),
                    timeout=self.timeout,
                )
            return imaplib.IMAP4(host, port, timeout=self.timeout)
        except IMAP_ERRORS as e:
            raise self._stage_error(ImapStage.CONNECT, e) from e

    def _select_inbox(self, server):
        status, data = self._call(server.select, ImapStage.SELECT, "INBOX", readonly=True)
        if status != "OK":
            raise self._stage_error(ImapStage.SELECT, _response_text(data))

    def _search_since(self, server, cutoff):
        date_str = cutoff.strftime("%d-%b-%Y")
        status, data = self._call(
            server.search, ImapStage.SEARCH, None, "ALL", "SINCE", date_str
        )
        if status != "OK":
            raise self._stage_error(ImapStage.SEARCH, _response_text(data))
        if not data or not data[0]:
            return []
        return [number.decode("ascii") for number in data[0].split()]

    def _fetch_chunk(self, server, chunk):
        """Fetch one chunk of messages; returns ``(raw_bytes, internal_date)`` pairs."""
        status, data = self._call(
            server.fetch, ImapStage.FETCH, ",".join(chunk), FETCH_ITEMS
        )
        if status != "OK":
            raise self._stage_error(ImapStage.FETCH, _response_text(data))

        messages = []
        for item in data or []:
            # Literal responses come back as (envelope, body); whatever follows
            # the literal, INTERNALDATE included, arrives as a bytes item
            if isinstance(item, tuple) and len(item) >= 2:
                messages.append([item[1], _internal_date(item[0])])
            elif isinstance(item, bytes) and messages and messages[-1][1] is None:
                messages[-1][1] = _internal_date(item)
        return [tuple(message) for message in messages]

    def _call(self, method, stage, *args, **kwargs):
        try:
            return method(*args, **kwargs)
        except IMAP_ERRORS as e:
            raise self._stage_error(stage, e) from e

    def _stage_error(self, stage, cause):
        if isinstance(cause, socket.timeout):
            error = TimeoutError(str(stage), cause, protocol=Protocol.IMAP)
        else:
            error = ImapError(str(stage), cause)
        logger.error(
            f"IMAP {stage} failed",
            extra={"stage": str(stage), "error": str(cause)},
        )
        return error

    def _disconnect(self, server):
        """Log out of the IMAP session."""
        try:
            server.logout()
        except IMAP_ERRORS as e:
            logger.warning(
                "Error disconnecting from IMAP server", extra={"error": str(e)}
            )


def _response_text(data):
    if not data:
        return "no response"
    first = data[0]
    if isinstance(first, bytes):
        return first.decode("utf-8", errors="replace")
    return str(first)


def _internal_date(envelope):
    """Turn the INTERNALDATE of a FETCH envelope into an aware UTC datetime."""
    if not isinstance(envelope, bytes):
        return None
    parsed = imaplib.Internaldate2tuple(envelope)
    if parsed is None:
        return None
    return datetime.fromtimestamp(time.mktime(parsed), tz=dt_timezone.utc)
