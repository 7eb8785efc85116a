"""Tests for the mail_sync management commands."""

from io import StringIO
from unittest import mock

import pytest
from django.core.management import CommandError, call_command

from mail_sync.enums import Collection, SendStatus

from .factories import DEFAULT_PASSWORD, cryptojs_encrypt, save_account
from .fakes import FakeIMAP, MockSMTPServer, build_raw_message


def run(command, *args, **kwargs):
    out = StringIO()
    call_command(command, *args, stdout=out, **kwargs)
    return out.getvalue()


class TestEncryptCredentials:
    def test_encrypts_plaintext_passwords(self, container, store, cipher):
        store.set(
            Collection.ACCOUNTS,
            "plain",
            {"userId": "user-1", "email": "a@example.com", "password": "pw"},
        )

        output = run("encrypt_credentials")

        document = store.get(Collection.ACCOUNTS, "plain")
        assert "password" not in document
        assert cipher.decrypt(document["encryptedPassword"]) == "pw"
        assert "Accounts updated: 1" in output

    def test_migrates_legacy_ciphertexts(self, container, store, cipher, settings):
        legacy = cryptojs_encrypt("legacy-pw", settings.FIELD_ENCRYPTION_KEY)
        account = save_account(store, encrypted_password=legacy)

        run("encrypt_credentials")

        migrated = store.get(Collection.ACCOUNTS, account.id)["encryptedPassword"]
        assert not cipher.is_legacy(migrated)
        assert cipher.decrypt(migrated) == "legacy-pw"

    def test_current_values_are_left_alone(self, container, store, account):
        before = store.get(Collection.ACCOUNTS, account.id)

        output = run("encrypt_credentials")

        assert store.get(Collection.ACCOUNTS, account.id) == before
        assert "No accounts found that need credential encryption" in output

    def test_force_reencrypts(self, container, store, account, cipher):
        before = store.get(Collection.ACCOUNTS, account.id)["encryptedPassword"]

        run("encrypt_credentials", "--force")

        after = store.get(Collection.ACCOUNTS, account.id)["encryptedPassword"]
        assert after != before
        assert cipher.decrypt(after) == DEFAULT_PASSWORD

    def test_dry_run_writes_nothing(self, container, store):
        store.set(
            Collection.ACCOUNTS,
            "plain",
            {"userId": "user-1", "email": "a@example.com", "password": "pw"},
        )

        output = run("encrypt_credentials", "--dry-run")

        assert store.get(Collection.ACCOUNTS, "plain")["password"] == "pw"
        assert "1 accounts would be updated" in output

    def test_undecryptable_values_fail_the_command(self, container, store):
        save_account(store, encrypted_password=cryptojs_encrypt("pw", "wrong-key"))

        with pytest.raises(CommandError):
            run("encrypt_credentials", "--force")

    def test_requires_encryption_key(self, container, settings, monkeypatch):
        settings.FIELD_ENCRYPTION_KEY = ""
        monkeypatch.delenv("EMAIL_ENCRYPTION_KEY", raising=False)

        with pytest.raises(CommandError):
            run("encrypt_credentials")


class TestSyncMailbox:
    def test_sync_one_account(self, container, store, account):
        server = FakeIMAP(messages=[build_raw_message(message_id="<x@example.com>")])

        with mock.patch("imaplib.IMAP4_SSL", server):
            output = run("sync_mailbox", "--account-id", account.id)

        assert "Fetched 1 messages, inserted 1" in output
        assert store.count(Collection.EMAILS) == 1

    def test_sync_failure(self, container, account):
        with mock.patch("imaplib.IMAP4_SSL", FakeIMAP(fail_stage="auth")):
            with pytest.raises(CommandError):
                run("sync_mailbox", "--account-id", account.id)

    def test_unknown_account(self, container):
        with pytest.raises(CommandError):
            run("sync_mailbox", "--account-id", "missing")

    def test_requires_an_option(self, container):
        with pytest.raises(CommandError):
            run("sync_mailbox")

    def test_schedule_all(self, container):
        with mock.patch(
            "mail_sync.management.commands.sync_mailbox.sync_all_accounts"
        ) as task:
            task.delay.return_value.id = "batch-id"
            output = run("sync_mailbox", "--all")

        task.delay.assert_called_once_with()
        assert "batch-id" in output


class TestEmailConnectivity:
    def test_all_checks_pass(self, container, account):
        imap_server = FakeIMAP()
        smtp_server = MockSMTPServer()

        with mock.patch("imaplib.IMAP4_SSL", imap_server), mock.patch(
            "smtplib.SMTP", smtp_server
        ):
            output = run("test_email_connectivity", "--account-id", account.id)

        assert "IMAP: connection successful" in output
        assert "SMTP: connection successful" in output
        assert imap_server.logged_out

    def test_failed_check(self, container, account):
        with mock.patch("smtplib.SMTP", MockSMTPServer(auth_fail=True)):
            with pytest.raises(CommandError):
                run(
                    "test_email_connectivity",
                    "--account-id",
                    account.id,
                    "--test-type",
                    "smtp",
                )

    def test_send_test_email(self, container, store, account):
        smtp_server = MockSMTPServer()

        with mock.patch("smtplib.SMTP", smtp_server):
            output = run(
                "test_email_connectivity",
                "--account-id",
                account.id,
                "--test-type",
                "smtp",
                "--send-test-email",
                "--to-email",
                "ops@example.com",
            )

        assert "Test email sent successfully" in output
        assert smtp_server.sent_messages[0]["to_addrs"] == ["ops@example.com"]
        [(_, document)] = store.query(Collection.EMAILS)
        assert document["status"] == SendStatus.SENT

    def test_unknown_account(self, container):
        with pytest.raises(CommandError):
            run("test_email_connectivity", "--account-id", "missing")
