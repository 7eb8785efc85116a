"""Tests for the MIME message parser."""

from datetime import datetime, timezone as dt_timezone

import pytest
from django.utils import timezone

from mail_sync.exceptions import ParseError
from mail_sync.utils.email_parser import MailParser

from .fakes import build_raw_message


@pytest.fixture
def parser():
    return MailParser()


def test_extracts_headers(parser):
    raw = build_raw_message(
        subject="Quarterly report",
        message_id="<abc123@example.com>",
        sender="Alice Example <alice@example.com>",
        to="bob@example.com",
    )

    message = parser.parse(raw, account_id="account-1")

    assert message.message_id == "<abc123@example.com>"
    assert message.subject == "Quarterly report"
    assert message.from_address == "Alice Example <alice@example.com>"
    assert message.to_address == "bob@example.com"
    assert message.account_id == "account-1"
    assert message.received_at == datetime(2026, 10, 16, 8, 30, tzinfo=dt_timezone.utc)
    assert message.received_at_estimated is False


def test_prefers_html_body(parser):
    raw = build_raw_message(body="plain version", html="<p>html version</p>")

    assert parser.parse(raw).body.strip() == "<p>html version</p>"


def test_converts_text_body_to_html(parser):
    raw = build_raw_message(body="Line one\nLine two\n\nSecond <para>")

    body = parser.parse(raw).body

    assert body.startswith("<p>Line one<br>Line two</p>")
    assert "&lt;para&gt;" in body


def test_takes_first_address_of_several(parser):
    raw = build_raw_message(to="first@example.com, Second <second@example.com>")

    assert parser.parse(raw).to_address == "first@example.com"


def test_decodes_encoded_subject(parser):
    raw = b"Subject: =?utf-8?b?SMOpbGxvIHfDtnJsZA==?=\n" + build_raw_message(subject=None)

    assert parser.parse(raw).subject == "Héllo wörld"


def test_missing_fields_default_to_empty(parser):
    raw = build_raw_message(subject=None, to=None, message_id=None, body="x")

    message = parser.parse(raw)

    assert message.subject == ""
    assert message.to_address == ""
    assert message.message_id == ""


def test_missing_date_uses_fallback(parser):
    fallback = datetime(2026, 10, 17, 10, 0, tzinfo=dt_timezone.utc)
    raw = build_raw_message(date=None)

    message = parser.parse(raw, fallback_date=fallback)

    assert message.received_at == fallback
    assert message.received_at_estimated is False


def test_missing_date_without_fallback_uses_now(parser):
    before = timezone.now()
    message = parser.parse(build_raw_message(date=None))

    assert message.received_at >= before
    assert message.received_at_estimated is True


def test_unparseable_date_uses_fallback(parser):
    fallback = datetime(2026, 10, 17, 10, 0, tzinfo=dt_timezone.utc)
    raw = b"Date: not a date\n" + build_raw_message(date=None)

    assert parser.parse(raw, fallback_date=fallback).received_at == fallback


def test_extracts_attachments(parser):
    raw = build_raw_message(
        html="<p>see attached</p>",
        attachments=[("report.pdf", b"%PDF-1.4 data", "application/pdf")],
    )

    message = parser.parse(raw)

    assert message.body.strip() == "<p>see attached</p>"
    assert len(message.attachments) == 1
    attachment = message.attachments[0]
    assert attachment.filename == "report.pdf"
    assert attachment.content_type == "application/pdf"
    assert attachment.size == len(b"%PDF-1.4 data")
    assert attachment.content == "JVBERi0xLjQgZGF0YQ=="
    assert attachment.truncated is False


def test_oversized_attachment_is_truncated(parser, settings):
    settings.EMAIL_ATTACHMENT_SIZE_LIMIT = 4
    raw = build_raw_message(attachments=[("big.bin", b"0123456789", "application/octet-stream")])

    attachment = parser.parse(raw).attachments[0]

    assert attachment.truncated is True
    assert attachment.content is None
    assert attachment.size == 10


@pytest.mark.parametrize(
    "raw",
    [b"", b"   \r\n", "a string, not bytes", None, b"this is not an email message\r\n"],
)
def test_malformed_input_raises(parser, raw):
    with pytest.raises(ParseError):
        parser.parse(raw)
