from django.apps import AppConfig


class MailSyncConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "mail_sync"
    verbose_name = "Mailbox Synchronization"

    container = None

    def ready(self):
        from .container import build_container

        self.container = build_container()
