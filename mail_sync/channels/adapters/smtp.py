"""
SMTP email protocol adapter implementation.

This module provides the ``SmtpSender`` for submitting outbound messages with
an HTML body, a plain-text alternative and optional attachments.
"""

import smtplib
import socket
from contextlib import contextmanager
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid

from django.utils.html import strip_tags

from webmail_core.utils.logging import ContextLogger

from ...config import get_config
from ...enums import Protocol, SmtpStage
from ...exceptions import SmtpError, TimeoutError
from ...records import SendResult
from .. import utils
from .base import BaseOutboundAdapter

logger = ContextLogger(__name__)

IMPLICIT_TLS_PORT = 465


class SmtpSender(BaseOutboundAdapter):
    """
    SMTP adapter for sending email messages.

    The transport follows the account flags: implicit TLS when TLS is on and
    the port is 465, STARTTLS when TLS is on for any other port, plain
    otherwise. Every call opens its own session and quits it before returning.
    """

    protocol = Protocol.SMTP

    def __init__(self, timeout=None, verify_before_send=None, verify_ssl=None):
        super().__init__(timeout if timeout is not None else get_config("SMTP_TIMEOUT"))
        self.verify_before_send = (
            verify_before_send
            if verify_before_send is not None
            else get_config("SMTP_VERIFY_BEFORE_SEND")
        )
        self.verify_ssl = (
            verify_ssl if verify_ssl is not None else get_config("SMTP_VERIFY_SSL")
        )

    def send(self, account, password, message):
        """
        Send an email message through the account's SMTP server.

        Args:
            account: MailAccount with SMTP server settings
            password: Decrypted account password
            message: OutboundMessage to deliver

        Returns:
            SendResult with the generated Message-ID

        Raises:
            SmtpError: If connect, tls, handshake, auth or send fails
            TimeoutError: If the server stops answering
        """
        account.require_smtp()
        mime_message = self.build_message(account, message)

        with self._session(
            account.smtp_host,
            account.smtp_port,
            account.smtp_use_tls,
            account.email,
            password,
            verify=self.verify_before_send,
        ) as server:
            logger.info(
                f"Sending email to {len(message.to)} recipients",
                extra={"account_id": account.id},
            )
            self._call(
                server.send_message,
                SmtpStage.SEND,
                mime_message,
                from_addr=account.email,
                to_addrs=[utils.extract_email_address(to) for to in message.to],
            )

        logger.info(
            "Email sent successfully",
            extra={"account_id": account.id, "message_id": mime_message["Message-ID"]},
        )
        return SendResult(success=True, message_id=mime_message["Message-ID"])

    def test_connection(self, host, port, use_tls, username, password):
        """
        Connect, verify the handshake, authenticate and quit.

        Raises:
            SmtpError: If any stage fails
        """
        with self._session(host, port, use_tls, username, password, verify=True):
            pass
        return True

    def build_message(self, account, message):
        """Build the MIME message: HTML body, text alternative, attachments."""
        body = MIMEMultipart("alternative")
        body.attach(MIMEText(strip_tags(message.html_body or ""), "plain", "utf-8"))
        body.attach(MIMEText(message.html_body or "", "html", "utf-8"))

        if message.attachments:
            msg = MIMEMultipart("mixed")
            msg.attach(body)
            for attachment in message.attachments:
                msg.attach(self._attachment_part(attachment))
        else:
            msg = body

        domain = account.email.rsplit("@", 1)[-1] or None
        msg["Subject"] = utils.sanitize_subject(message.subject)
        msg["From"] = formataddr((account.display_name, account.email))
        msg["To"] = ", ".join(message.to)
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=domain)
        return msg

    def _attachment_part(self, attachment):
        maintype, _, subtype = attachment.content_type.partition("/")
        part = MIMEBase(maintype or "application", subtype or "octet-stream")
        part.set_payload(attachment.content)
        encoders.encode_base64(part)
        part.add_header(
            "Content-Disposition", "attachment", filename=attachment.filename
        )
        return part

    @contextmanager
    def _session(self, host, port, use_tls, username, password, verify=False):
        server = self._connect(host, port, use_tls)
        try:
            if use_tls and port != IMPLICIT_TLS_PORT:
                self._call(
                    server.starttls,
                    SmtpStage.TLS,
                    context=utils.create_ssl_context(self.verify_ssl),
                )
            if verify:
                self._verify_handshake(server)
            self._call(server.login, SmtpStage.AUTH, username, password)
            logger.debug("SMTP authentication successful", extra={"server": host})
            yield server
        finally:
            self.disconnect(server)

    def _connect(self, host, port, use_tls):
        logger.info(
            "Connecting to SMTP server",
            extra={"server": host, "port": port, "use_tls": use_tls},
        )
        try:
            if use_tls and port == IMPLICIT_TLS_PORT:
                return smtplib.SMTP_SSL(
                    host=host,
                    port=port,
                    timeout=self.timeout,
                    context=utils.create_ssl_context(self.verify_ssl),
                )
            return smtplib.SMTP(host=host, port=port, timeout=self.timeout)
        except (smtplib.SMTPException, OSError) as e:
            raise self._stage_error(SmtpStage.CONNECT, e) from e

    def _verify_handshake(self, server):
        for command in (server.ehlo, server.noop):
            code, reply = self._call(command, SmtpStage.HANDSHAKE)
            if code != 250:
                raise self._stage_error(
                    SmtpStage.HANDSHAKE, f"{code} {_reply_text(reply)}"
                )

    def _call(self, method, stage, *args, **kwargs):
        try:
            return method(*args, **kwargs)
        except (smtplib.SMTPException, OSError) as e:
            raise self._stage_error(stage, e) from e

    def _stage_error(self, stage, cause):
        if isinstance(cause, socket.timeout):
            error = TimeoutError(str(stage), cause, protocol=Protocol.SMTP)
        else:
            error = SmtpError(str(stage), cause)
        logger.error(
            f"SMTP {stage} failed",
            extra={"stage": str(stage), "error": str(cause)},
        )
        return error

    def disconnect(self, server):
        """
        Close the connection to the SMTP server.
        """
        try:
            server.quit()
            logger.debug("Disconnected from SMTP server")
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Error disconnecting from SMTP server: {str(e)}")
            server.close()


def _reply_text(reply):
    if isinstance(reply, bytes):
        return reply.decode("utf-8", errors="replace")
    return str(reply)
