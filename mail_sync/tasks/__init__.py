from .polling import sync_account_task, sync_all_accounts
from .sending import send_email_task

__all__ = ["send_email_task", "sync_account_task", "sync_all_accounts"]
