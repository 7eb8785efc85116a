"""Mailbox synchronization service.

Loads an account, decrypts its password, fetches the inbox since the sync
window and persists the messages that are not stored yet.
"""

from datetime import timedelta

from django.utils import timezone

from ..config import get_config
from ..enums import Collection
from ..exceptions import MailSyncError
from ..records import SyncResult
from ..utils.locks import sync_lease
from .base_service import BaseService
from .reconciler import SyncReconciler


class SyncService(BaseService):
    """Synchronizes one account's inbox into the document store."""

    def __init__(self, store, cipher, fetcher, reconciler=None):
        super().__init__(store, cipher)
        self.fetcher = fetcher
        self.reconciler = reconciler or SyncReconciler(store)

    def sync(self, user_id, account_id):
        """Synchronize the inbox of ``account_id`` for ``user_id``.

        Args:
        ----
            user_id: Verified caller
            account_id: Account document id

        Returns:
        -------
            SyncResult with inserted, fetched and unparseable counts

        Raises:
        ------
            NotFoundError, AuthorizationError: Before any network I/O
            SyncInProgressError: If the account is already being synchronized
            CryptoError, ImapError, TimeoutError, StoreError: From the pipeline

        """
        account = self.load_account(user_id, account_id)
        account.require_imap()

        with self.logger.context(user_id=user_id, account_id=account_id):
            with sync_lease(user_id, account_id):
                try:
                    result = self._run(account)
                except MailSyncError as e:
                    self.log_transaction("sync", "error", {"error": str(e)})
                    self._record_sync(account, error=e)
                    raise

                self.log_transaction("sync", "success", result.to_payload())
                self._record_sync(account)
                return result

    def cutoff(self):
        return timezone.now() - timedelta(days=get_config("SYNC_WINDOW_DAYS"))

    def _run(self, account):
        password = self.decrypt_password(account)
        parse_failures = []

        fetched = list(
            self.fetcher.fetch_since(
                account, password, self.cutoff(), on_parse_error=parse_failures.append
            )
        )
        reconciled = self.reconciler.reconcile(account.user_id, fetched)

        return SyncResult(
            inserted_count=reconciled.inserted_count,
            total_fetched=reconciled.total_fetched,
            parse_failures=len(parse_failures),
        )

    def _record_sync(self, account, error=None):
        """Write ``lastSyncAt``/``lastSyncError`` on the account, best effort."""
        if error is None:
            changes = {"lastSyncAt": timezone.now().isoformat(), "lastSyncError": ""}
        else:
            changes = {"lastSyncError": error.public_message}

        try:
            self.store.update(Collection.ACCOUNTS, account.id, changes)
        except MailSyncError as e:
            self.logger.warning(
                "Could not record sync status on account", extra={"error": str(e)},
            )
