"""Tests for the outbound send service."""

import base64
from unittest import mock

import pytest

from mail_sync.channels.adapters import SmtpSender
from mail_sync.enums import Collection, Folder, SendStatus
from mail_sync.exceptions import (
    AuthorizationError,
    ConfigError,
    CryptoError,
    NotFoundError,
    SmtpError,
    StoreError,
    TimeoutError,
)
from mail_sync.services import SendService

from .factories import save_account, save_email
from .fakes import MockSMTPServer


@pytest.fixture
def server():
    return MockSMTPServer()


@pytest.fixture
def service(store, cipher):
    return SendService(store, cipher, SmtpSender())


def send(service, account, server, **kwargs):
    params = {
        "to": "bob@example.com",
        "subject": "Hello",
        "content": "<p>Hi Bob</p>",
    }
    params.update(kwargs)
    with mock.patch("smtplib.SMTP", server):
        return service.send("user-1", account.id, **params)


def sent_records(store):
    return store.query(Collection.EMAILS, {"folder": Folder.SENT})


def test_send_creates_sent_record(service, store, account, server):
    result = send(service, account, server)

    assert result.success
    assert result.status_persisted
    [(email_id, document)] = sent_records(store)
    assert result.email_id == email_id
    assert document["status"] == SendStatus.SENT
    assert document["sentMessageId"] == result.message_id
    assert document["messageId"] == ""
    assert document["from"] == account.email
    assert document["to"] == "bob@example.com"
    assert document["subject"] == "Hello"
    assert document["content"] == "<p>Hi Bob</p>"
    assert document["userId"] == "user-1"
    assert document["read"] is True
    assert document["error"] is None


def test_send_updates_existing_record(service, store, account, server):
    email_id = save_email(store, folder=Folder.SENT, status=SendStatus.SENDING)

    result = send(service, account, server, email_id=email_id)

    assert result.email_id == email_id
    assert store.count(Collection.EMAILS) == 1
    assert store.get(Collection.EMAILS, email_id)["status"] == SendStatus.SENT


def test_auth_failure_marks_record_as_error(service, store, account):
    server = MockSMTPServer(auth_fail=True)

    with pytest.raises(SmtpError) as excinfo:
        send(service, account, server)

    assert excinfo.value.stage == "auth"
    [(_, document)] = sent_records(store)
    assert document["status"] == SendStatus.ERROR
    assert document["error"] == "The outgoing mail server rejected the credentials"
    assert server.sent_messages == []


def test_timeout_marks_record_as_error(service, store, account):
    server = MockSMTPServer(timeout_stage="send")

    with pytest.raises(TimeoutError):
        send(service, account, server)

    [(_, document)] = sent_records(store)
    assert document["status"] == SendStatus.ERROR
    assert document["error"] == "The mail server did not respond in time"


def test_undecryptable_password_marks_record_as_error(service, store, server):
    account = save_account(store, encrypted_password="garbage")

    with pytest.raises(CryptoError):
        send(service, account, server)

    [(_, document)] = sent_records(store)
    assert document["status"] == SendStatus.ERROR
    assert server.calls == []


def test_missing_smtp_host_marks_record_as_error(service, store, server):
    account = save_account(store, smtp_host="")

    with pytest.raises(ConfigError):
        send(service, account, server)

    [(_, document)] = sent_records(store)
    assert document["status"] == SendStatus.ERROR
    assert document["error"] == "The outgoing mail server is not configured"


def test_status_write_failure_after_send(service, store, account, server):
    with mock.patch.object(store, "update", side_effect=StoreError("down")):
        result = send(service, account, server)

    assert result.success
    assert result.status_persisted is False
    assert len(server.sent_messages) == 1
    assert result.to_payload()["statusPersisted"] is False


def test_status_write_failure_after_send_error(service, store, account):
    server = MockSMTPServer(auth_fail=True)

    with mock.patch.object(store, "update", side_effect=StoreError("down")):
        with pytest.raises(SmtpError) as excinfo:
            send(service, account, server)

    assert excinfo.value.stage == "auth"
    assert server.sent_messages == []
    [(_, document)] = sent_records(store)
    assert document["status"] == SendStatus.SENDING


def test_foreign_account_is_rejected_before_connecting(service, store, server):
    foreign = save_account(store, user_id="user-2")

    with pytest.raises(AuthorizationError):
        send(service, foreign, server)

    assert server.calls == []
    assert store.count(Collection.EMAILS) == 0


def test_foreign_email_record_is_rejected(service, store, account, server):
    email_id = save_email(store, user_id="user-2", folder=Folder.SENT)

    with pytest.raises(AuthorizationError):
        send(service, account, server, email_id=email_id)

    assert server.calls == []
    assert "status" not in store.get(Collection.EMAILS, email_id)


def test_unknown_email_record(service, account, server):
    with pytest.raises(NotFoundError):
        send(service, account, server, email_id="missing")

    assert server.calls == []


@pytest.mark.parametrize(
    "to, expected",
    [
        ("bob@example.com", ["bob@example.com"]),
        ("bob@example.com, carol@example.com", ["bob@example.com", "carol@example.com"]),
        (["bob@example.com", " ", "carol@example.com"], ["bob@example.com", "carol@example.com"]),
    ],
)
def test_recipients(service, account, server, to, expected):
    send(service, account, server, to=to)

    assert server.sent_messages[0]["to_addrs"] == expected


@pytest.mark.parametrize("to", ["", " , ", []])
def test_missing_recipients(service, store, account, server, to):
    with pytest.raises(ConfigError):
        send(service, account, server, to=to)

    assert store.count(Collection.EMAILS) == 0


def test_attachments_are_sent(service, account, server):
    attachments = [
        {
            "filename": "notes.txt",
            "content": base64.b64encode(b"hello").decode(),
            "contentType": "text/plain",
        }
    ]

    send(service, account, server, attachments=attachments)

    message = server.sent_messages[0]["message"]
    assert message.get_content_type() == "multipart/mixed"
    assert message.get_payload()[1].get_payload(decode=True) == b"hello"


def test_invalid_attachment(service, store, account, server):
    with pytest.raises(ConfigError):
        send(
            service,
            account,
            server,
            attachments=[{"filename": "a.bin", "content": "%%%"}],
        )

    assert server.calls == []
    assert store.count(Collection.EMAILS) == 0
