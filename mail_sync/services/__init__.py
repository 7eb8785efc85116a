from .account_service import AccountService
from .mailbox_service import MailboxService
from .reconciler import SyncReconciler
from .send_service import SendService
from .sync_service import SyncService

__all__ = [
    "AccountService",
    "MailboxService",
    "SendService",
    "SyncReconciler",
    "SyncService",
]
