from celery import shared_task
from django.utils import timezone

from webmail_core.utils.logging import ContextLogger, with_request_id

from ..config import get_config
from ..container import get_container
from ..enums import Collection
from ..exceptions import MailSyncError, SyncInProgressError, TimeoutError
from ..records import MailAccount

logger = ContextLogger(__name__)


@shared_task(
    bind=True,
    max_retries=get_config("MAX_RETRIES"),
    default_retry_delay=get_config("RETRY_DELAY"),
)
@with_request_id
def sync_account_task(self, user_id, account_id, _request_id=None):
    """Celery task to synchronize one account's inbox.

    This task is a thin wrapper around ``SyncService.sync``. Server timeouts
    are retried; other mail errors are logged and reported in the result.
    """
    logger.set_context(
        request_id=_request_id,
        task_id=self.request.id,
        user_id=user_id,
        account_id=account_id,
        task_name="sync_account_task",
        retry_count=self.request.retries,
    )

    try:
        logger.info("Starting mailbox sync task")
        result = get_container().sync_service.sync(user_id, account_id)
        logger.info("Mailbox sync completed successfully")
        return {"account_id": account_id, "status": "success", **result.to_payload()}
    except SyncInProgressError:
        logger.info("Another sync holds the lease; skipping")
        return {"account_id": account_id, "status": "skipped"}
    except TimeoutError as e:
        logger.warning(
            "Mail server timed out. Scheduling retry.",
            extra={
                "error": str(e),
                "retry_count": self.request.retries,
                "next_retry": timezone.now()
                + timezone.timedelta(seconds=get_config("RETRY_DELAY")),
            },
        )
        raise self.retry(exc=e)
    except MailSyncError as e:
        # The service layer has already logged the failure and recorded it
        # on the account document.
        return {"account_id": account_id, "status": "error", "error": e.public_message}


@shared_task
@with_request_id
def sync_all_accounts(_request_id=None):
    """Schedule a sync for every account not synchronized within SYNC_INTERVAL."""
    task_start_time = timezone.now()
    interval = get_config("SYNC_INTERVAL")

    logger.set_context(
        request_id=_request_id,
        task_name="sync_all_accounts",
        batch_start_time=task_start_time.isoformat(),
    )

    documents = get_container().store.query(Collection.ACCOUNTS)
    logger.info(
        f"Found {len(documents)} accounts", extra={"account_count": len(documents)}
    )

    scheduled = []
    skipped = 0
    invalid = 0

    for doc_id, data in documents:
        with logger.context(account_id=doc_id):
            try:
                account = MailAccount.from_document(doc_id, data)
            except MailSyncError as e:
                invalid += 1
                logger.warning("Skipping invalid account", extra={"error": str(e)})
                continue

            if not account.imap_host:
                skipped += 1
                continue

            if account.last_sync_at:
                elapsed = (task_start_time - account.last_sync_at).total_seconds()
                if elapsed < interval:
                    logger.debug(
                        "Skipping account - synchronized recently",
                        extra={"last_sync": account.last_sync_at.isoformat()},
                    )
                    skipped += 1
                    continue

            result = sync_account_task.delay(account.user_id, account.id)
            scheduled.append({"account_id": account.id, "task_id": result.id})

    logger.info(
        "Mailbox sync batch scheduled",
        extra={
            "scheduled": len(scheduled),
            "skipped": skipped,
            "invalid": invalid,
            "duration": (timezone.now() - task_start_time).total_seconds(),
        },
    )
    return {
        "scheduled": len(scheduled),
        "skipped": skipped,
        "invalid": invalid,
        "accounts": scheduled,
    }
