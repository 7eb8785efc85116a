"""
Tests for the SMTP sender.

These tests verify the behavior of the sender using a mock SMTP server to
simulate the actual server responses.
"""

from unittest import mock

import pytest
from django.test import SimpleTestCase

from mail_sync.channels.adapters.smtp import SmtpSender
from mail_sync.exceptions import ConfigError, SmtpError, TimeoutError
from mail_sync.records import OutboundAttachment, OutboundMessage

from .factories import DEFAULT_PASSWORD, MailAccountFactory
from .fakes import MockSMTPServer


def outbound(**kwargs):
    defaults = {
        "to": ["Bob <bob@example.com>", "carol@example.com"],
        "subject": "Hello",
        "html_body": "<p>Hi <b>Bob</b></p>",
    }
    defaults.update(kwargs)
    return OutboundMessage(**defaults)


class SmtpSenderTest(SimpleTestCase):
    """Test the SMTP sender with a mock server."""

    def setUp(self):
        self.account = MailAccountFactory(
            email="sender@example.com", display_name="Test Sender"
        )
        self.install(MockSMTPServer(), MockSMTPServer())

    def install(self, server, ssl_server):
        # Need to patch both SMTP and SMTP_SSL since we might use either
        self.server = server
        self.ssl_server = ssl_server
        for name, target in (("smtplib.SMTP", server), ("smtplib.SMTP_SSL", ssl_server)):
            patcher = mock.patch(name, target)
            patcher.start()
            self.addCleanup(patcher.stop)

    def methods(self, server):
        return [call["method"] for call in server.calls]

    def test_send_with_starttls(self):
        result = SmtpSender(timeout=15).send(self.account, DEFAULT_PASSWORD, outbound())

        self.assertTrue(result.success)
        self.assertTrue(result.message_id.startswith("<"))
        self.assertEqual(
            self.methods(self.server),
            ["__call__", "starttls", "ehlo", "noop", "login", "send_message", "quit"],
        )
        connect = self.server.called("__call__")[0]
        self.assertEqual(connect["args"], ("smtp.example.com", 587))
        self.assertEqual(connect["kwargs"]["timeout"], 15)
        self.assertEqual(
            self.server.called("login")[0]["args"], ("sender@example.com", DEFAULT_PASSWORD)
        )
        self.assertEqual(self.ssl_server.calls, [])

    def test_send_with_implicit_tls_on_port_465(self):
        account = MailAccountFactory(smtp_port=465)

        SmtpSender().send(account, DEFAULT_PASSWORD, outbound())

        self.assertEqual(self.server.calls, [])
        self.assertNotIn("starttls", self.methods(self.ssl_server))
        self.assertIn("send_message", self.methods(self.ssl_server))

    def test_send_without_tls(self):
        account = MailAccountFactory(smtp_use_tls=False, smtp_port=25)

        SmtpSender().send(account, DEFAULT_PASSWORD, outbound())

        self.assertNotIn("starttls", self.methods(self.server))
        self.assertIn("send_message", self.methods(self.server))

    def test_handshake_verification_can_be_disabled(self):
        SmtpSender(verify_before_send=False).send(self.account, DEFAULT_PASSWORD, outbound())

        self.assertNotIn("ehlo", self.methods(self.server))
        self.assertNotIn("noop", self.methods(self.server))

    def test_envelope_and_headers(self):
        SmtpSender().send(self.account, DEFAULT_PASSWORD, outbound(subject="Hi\r\nBcc: x"))

        sent = self.server.sent_messages[0]
        self.assertEqual(sent["from_addr"], "sender@example.com")
        self.assertEqual(sent["to_addrs"], ["bob@example.com", "carol@example.com"])

        message = sent["message"]
        self.assertEqual(message["From"], "Test Sender <sender@example.com>")
        self.assertEqual(message["To"], "Bob <bob@example.com>, carol@example.com")
        self.assertEqual(message["Subject"], "HiBcc: x")

    def test_html_body_has_plain_text_alternative(self):
        SmtpSender().send(self.account, DEFAULT_PASSWORD, outbound())

        message = self.server.sent_messages[0]["message"]
        self.assertEqual(message.get_content_type(), "multipart/alternative")
        plain, html = message.get_payload()
        self.assertEqual(plain.get_content_type(), "text/plain")
        self.assertEqual(plain.get_payload(decode=True).decode(), "Hi Bob")
        self.assertEqual(html.get_payload(decode=True).decode(), "<p>Hi <b>Bob</b></p>")

    def test_attachments(self):
        attachment = OutboundAttachment(
            filename="notes.txt", content=b"hello", content_type="text/plain"
        )

        SmtpSender().send(
            self.account, DEFAULT_PASSWORD, outbound(attachments=[attachment])
        )

        message = self.server.sent_messages[0]["message"]
        self.assertEqual(message.get_content_type(), "multipart/mixed")
        body, part = message.get_payload()
        self.assertEqual(body.get_content_type(), "multipart/alternative")
        self.assertEqual(part.get_filename(), "notes.txt")
        self.assertEqual(part.get_content_type(), "text/plain")
        self.assertEqual(part.get_payload(decode=True), b"hello")

    def test_auth_failure(self):
        self.install(MockSMTPServer(auth_fail=True), MockSMTPServer())

        with self.assertRaises(SmtpError) as ctx:
            SmtpSender().send(self.account, DEFAULT_PASSWORD, outbound())

        self.assertEqual(ctx.exception.stage, "auth")
        self.assertEqual(
            ctx.exception.public_message,
            "The outgoing mail server rejected the credentials",
        )
        self.assertIn("quit", self.methods(self.server))
        self.assertEqual(self.server.sent_messages, [])

    def test_send_failure(self):
        self.install(MockSMTPServer(send_fail=True), MockSMTPServer())

        with self.assertRaises(SmtpError) as ctx:
            SmtpSender().send(self.account, DEFAULT_PASSWORD, outbound())

        self.assertEqual(ctx.exception.stage, "send")
        self.assertIn("quit", self.methods(self.server))

    def test_connect_failure(self):
        self.install(MockSMTPServer(connect_fail=True), MockSMTPServer())

        with self.assertRaises(SmtpError) as ctx:
            SmtpSender().send(self.account, DEFAULT_PASSWORD, outbound())

        self.assertEqual(ctx.exception.stage, "connect")
        self.assertEqual(ctx.exception.status_code, 502)

    def test_handshake_failure(self):
        self.install(MockSMTPServer(noop_code=421), MockSMTPServer())

        with self.assertRaises(SmtpError) as ctx:
            SmtpSender().send(self.account, DEFAULT_PASSWORD, outbound())

        self.assertEqual(ctx.exception.stage, "handshake")
        self.assertNotIn("login", self.methods(self.server))
        self.assertIn("quit", self.methods(self.server))

    def test_missing_host_is_a_config_error(self):
        account = MailAccountFactory(smtp_host="")

        with self.assertRaises(ConfigError):
            SmtpSender().send(account, DEFAULT_PASSWORD, outbound())
        self.assertEqual(self.server.calls, [])


@pytest.mark.parametrize("stage", ["connect", "send"])
def test_timeouts_raise_timeout_error(stage):
    server = MockSMTPServer(timeout_stage=stage)

    with mock.patch("smtplib.SMTP", server):
        with pytest.raises(TimeoutError) as excinfo:
            SmtpSender().send(MailAccountFactory(), DEFAULT_PASSWORD, outbound())

    assert excinfo.value.stage == stage
    assert excinfo.value.protocol == "smtp"
    assert excinfo.value.status_code == 504


def test_test_connection_verifies_and_quits():
    server = MockSMTPServer()

    with mock.patch("smtplib.SMTP", server):
        assert SmtpSender(verify_before_send=False).test_connection(
            "smtp.example.com", 587, True, "user@example.com", "pw"
        )

    methods = [call["method"] for call in server.calls]
    assert methods == ["__call__", "starttls", "ehlo", "noop", "login", "quit"]


def test_tls_verification_follows_smtp_setting(settings):
    settings.EMAIL_SMTP_VERIFY_SSL = False
    settings.EMAIL_IMAP_VERIFY_SSL = True

    assert SmtpSender().verify_ssl is False
    assert SmtpSender(verify_ssl=True).verify_ssl is True
