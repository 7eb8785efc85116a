"""Tests for the Celery tasks."""

from datetime import timedelta
from unittest import mock

import pytest
from django.core.cache import cache
from django.utils import timezone

from mail_sync.config import get_config
from mail_sync.enums import Collection, SendStatus
from mail_sync.exceptions import TimeoutError
from mail_sync.tasks import send_email_task, sync_account_task, sync_all_accounts
from mail_sync.utils.locks import lease_key
from webmail_core import celery_app

from .factories import save_account, save_email
from .fakes import FakeIMAP, MockSMTPServer, build_raw_message


@pytest.fixture
def imap_server():
    server = FakeIMAP(messages=[build_raw_message(message_id="<one@example.com>")])
    with mock.patch("imaplib.IMAP4_SSL", server):
        yield server


class TestSyncAccountTask:
    def test_success(self, container, account, imap_server):
        result = sync_account_task("user-1", account.id)

        assert result == {
            "account_id": account.id,
            "status": "success",
            "insertedCount": 1,
            "totalFetched": 1,
            "parseFailures": 0,
        }

    def test_runs_eagerly_through_delay(self, container, account, imap_server, store):
        result = sync_account_task.delay("user-1", account.id).get()

        assert result["status"] == "success"
        assert store.count(Collection.EMAILS) == 1

    def test_skipped_while_lease_is_held(self, container, account, imap_server):
        cache.add(lease_key("user-1", account.id), "other-worker", 60)

        result = sync_account_task("user-1", account.id)

        assert result == {"account_id": account.id, "status": "skipped"}
        assert imap_server.calls == []

    def test_mail_errors_are_reported(self, container, account):
        server = FakeIMAP(fail_stage="auth")

        with mock.patch("imaplib.IMAP4_SSL", server):
            result = sync_account_task("user-1", account.id)

        assert result == {
            "account_id": account.id,
            "status": "error",
            "error": "The incoming mail server rejected the credentials",
        }

    def test_timeouts_are_retried(self, container, account):
        server = FakeIMAP(timeout_stage="connect")

        # Called directly, ``retry`` re-raises the original error
        with mock.patch("imaplib.IMAP4_SSL", server):
            with pytest.raises(TimeoutError):
                sync_account_task("user-1", account.id)


class TestSyncAllAccounts:
    def test_schedules_due_accounts(self, container, store):
        due = save_account(store)
        save_account(store, last_sync_at=timezone.now() - timedelta(minutes=1))
        stale = save_account(store, last_sync_at=timezone.now() - timedelta(hours=1))
        save_account(store, imap_host="")
        store.set(Collection.ACCOUNTS, "broken", {"userId": "user-1"})

        with mock.patch("mail_sync.tasks.polling.sync_account_task") as task:
            task.delay.return_value.id = "task-id"
            result = sync_all_accounts()

        assert result["scheduled"] == 2
        assert result["skipped"] == 2
        assert result["invalid"] == 1
        task.delay.assert_has_calls(
            [mock.call("user-1", due.id), mock.call("user-1", stale.id)], any_order=True
        )
        assert {item["account_id"] for item in result["accounts"]} == {due.id, stale.id}

    def test_no_accounts(self, container):
        with mock.patch("mail_sync.tasks.polling.sync_account_task") as task:
            result = sync_all_accounts()

        task.delay.assert_not_called()
        assert result["scheduled"] == 0


class TestSendEmailTask:
    def send(self, account, **kwargs):
        return send_email_task(
            "user-1", account.id, "bob@example.com", "Hello", "<p>Hi</p>", **kwargs
        )

    def test_success(self, container, account, store):
        server = MockSMTPServer()

        with mock.patch("smtplib.SMTP", server):
            result = self.send(account)

        assert result["success"] is True
        assert store.get(Collection.EMAILS, result["emailId"])["status"] == SendStatus.SENT

    def test_smtp_errors_are_reported(self, container, account):
        with mock.patch("smtplib.SMTP", MockSMTPServer(auth_fail=True)):
            result = self.send(account)

        assert result == {
            "success": False,
            "error": "The outgoing mail server rejected the credentials",
        }

    def test_timeout_without_record_is_not_retried(self, container, account, store):
        with mock.patch("smtplib.SMTP", MockSMTPServer(timeout_stage="connect")):
            result = self.send(account)

        assert result["success"] is False
        assert store.count(Collection.EMAILS) == 1

    def test_timeout_before_submission_is_retried(self, container, account, store):
        email_id = save_email(store, status=SendStatus.SENDING)

        with mock.patch("smtplib.SMTP", MockSMTPServer(timeout_stage="connect")):
            with pytest.raises(TimeoutError):
                self.send(account, email_id=email_id)

    def test_timeout_during_submission_is_not_retried(self, container, account, store):
        email_id = save_email(store, status=SendStatus.SENDING)

        with mock.patch("smtplib.SMTP", MockSMTPServer(timeout_stage="send")):
            result = self.send(account, email_id=email_id)

        assert result["success"] is False
        assert store.get(Collection.EMAILS, email_id)["status"] == SendStatus.ERROR


def test_beat_schedule_follows_sync_interval():
    entry = celery_app.conf.beat_schedule["sync-mail-accounts"]

    assert entry["task"] == "mail_sync.tasks.polling.sync_all_accounts"
    assert entry["schedule"] == get_config("SYNC_INTERVAL")
    assert 0 < entry["options"]["expires"] < entry["schedule"]
