"""Cache-backed leases that serialize work on one mail account."""

from contextlib import contextmanager
import uuid

from django.core.cache import cache

from webmail_core.utils.logging import ContextLogger

from ..config import get_config
from ..exceptions import SyncInProgressError

logger = ContextLogger(__name__)


def lease_key(user_id, account_id):
    return f"mail_sync:sync_lease:{user_id}:{account_id}"


@contextmanager
def sync_lease(user_id, account_id, timeout=None):
    """
    Hold the sync lease for one ``(user, account)`` pair.

    The lease expires on its own after ``SYNC_LOCK_TIMEOUT`` seconds so a
    crashed worker cannot block the account forever.

    Raises:
        SyncInProgressError: If another sync already holds the lease
    """
    key = lease_key(user_id, account_id)
    token = uuid.uuid4().hex
    timeout = timeout or get_config("SYNC_LOCK_TIMEOUT")

    if not cache.add(key, token, timeout):
        logger.info(
            "Sync already in progress",
            extra={"user_id": user_id, "account_id": account_id},
        )
        raise SyncInProgressError(f"Sync lease for account {account_id} is held")

    try:
        yield
    finally:
        # Only release our own lease; an expired one may have been re-acquired
        if cache.get(key) == token:
            cache.delete(key)
