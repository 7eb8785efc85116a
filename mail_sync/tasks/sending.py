from celery import shared_task
from django.utils import timezone

from webmail_core.utils.logging import ContextLogger, with_request_id

from ..config import get_config
from ..container import get_container
from ..enums import SmtpStage
from ..exceptions import MailSyncError, TimeoutError

logger = ContextLogger(__name__)


@shared_task(
    bind=True,
    max_retries=get_config("MAX_RETRIES"),
    default_retry_delay=get_config("RETRY_DELAY"),
)
@with_request_id
def send_email_task(
    self,
    user_id,
    account_id,
    to,
    subject,
    content,
    attachments=None,
    email_id=None,
    _request_id=None,
):
    """Celery task to send an email in the background.

    Timeouts before the message was handed over are retried against the same
    email record, so only calls that name an ``email_id`` are retried. A
    timeout during submission is never retried: the server may already have
    accepted the message.
    """
    logger.set_context(
        request_id=_request_id,
        task_id=self.request.id,
        user_id=user_id,
        account_id=account_id,
        email_id=email_id,
        task_name="send_email_task",
        retry_count=self.request.retries,
    )

    try:
        logger.info("Starting send task")
        result = get_container().send_service.send(
            user_id,
            account_id,
            to,
            subject,
            content,
            attachments=attachments,
            email_id=email_id,
        )
        return result.to_payload()
    except TimeoutError as e:
        if not email_id or e.stage == SmtpStage.SEND:
            return {"success": False, "error": e.public_message}
        logger.warning(
            "Mail server timed out before submission. Scheduling retry.",
            extra={
                "error": str(e),
                "stage": e.stage,
                "next_retry": timezone.now()
                + timezone.timedelta(seconds=get_config("RETRY_DELAY")),
            },
        )
        raise self.retry(exc=e)
    except MailSyncError as e:
        return {"success": False, "error": e.public_message}
