"""Celery configuration for the webmail backend."""

import os

from celery import Celery
from django.conf import settings

from mail_sync.config import get_config

# Set the default Django settings module for the 'celery' program
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "webmail_core.settings.dev")

app = Celery("webmail")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django app configs.
app.autodiscover_tasks()

app.conf.update(
    worker_disable_rate_limits=False,
    task_time_limit=30 * 60,  # 30 minutes max task execution time
    task_soft_time_limit=20 * 60,
    worker_max_tasks_per_child=1000,  # Prevent memory leaks
    worker_hijack_root_logger=False,  # Don't hijack root logger
    task_create_missing_queues=True,
    task_default_queue="default",
    result_expires=60 * 60 * 24,  # Results expire in 1 day
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIME_ZONE,
    enable_utc=True,
    task_acks_late=True,  # Tasks are acknowledged after execution
    task_reject_on_worker_lost=True,
    worker_log_format="%(asctime)s [%(process)d] [%(levelname)s] %(message)s",
    worker_task_log_format=(
        "%(asctime)s [%(process)d] [%(levelname)s] "
        "[%(task_name)s(%(task_id)s)] %(message)s"
    ),
)

# Scheduled tasks. Accounts synchronized more recently than SYNC_INTERVAL
# are skipped by the task itself, so the beat runs on the same interval.
sync_interval = get_config("SYNC_INTERVAL")

app.conf.beat_schedule = {
    "sync-mail-accounts": {
        "task": "mail_sync.tasks.polling.sync_all_accounts",
        "schedule": sync_interval,
        "args": (),
        # A queued run expires a minute before the next one is due
        "options": {"expires": max(sync_interval - 60, 1)},
    },
}
