"""
Service wiring for the mail_sync app.

``build_container`` resolves the configured document store and auth verifier
with ``import_string`` and hands them, together with the credential cipher and
the mail adapters, to the service constructors. The container is built once
by ``MailSyncConfig.ready()`` and stored on the app config.
"""

from django.apps import apps
from django.conf import settings
from django.utils.module_loading import import_string

from webmail_core.utils.logging import ContextLogger

from .channels.adapters import ImapFetcher, SmtpSender
from .exceptions import ConfigError
from .services import (
    AccountService,
    MailboxService,
    SendService,
    SyncReconciler,
    SyncService,
)
from .utils.crypto import CredentialCipher

logger = ContextLogger(__name__)

DEFAULT_BACKENDS = {
    "DOCUMENT_STORE": "mail_sync.store.django_store.DjangoDocumentStore",
    "AUTH_VERIFIER": "mail_sync.auth.JWTAuthVerifier",
}


class ServiceContainer:
    """Holds the shared collaborators and builds services from them."""

    def __init__(self, store, auth_verifier, cipher=None, fetcher=None, sender=None):
        self.store = store
        self.auth_verifier = auth_verifier
        self.cipher = cipher or CredentialCipher()
        self.fetcher = fetcher or ImapFetcher()
        self.sender = sender or SmtpSender()

    @property
    def sync_service(self):
        return SyncService(
            self.store, self.cipher, self.fetcher, SyncReconciler(self.store)
        )

    @property
    def send_service(self):
        return SendService(self.store, self.cipher, self.sender)

    @property
    def account_service(self):
        return AccountService(self.store, self.cipher, self.fetcher, self.sender)

    @property
    def mailbox_service(self):
        return MailboxService(self.store, self.cipher)


def _load_backend(name, path):
    try:
        backend_class = import_string(path)
    except ImportError as e:
        logger.error(
            "Failed to load mail sync backend",
            extra={"backend": name, "path": path, "error": str(e)},
        )
        raise ConfigError(f"Failed to load {name} backend {path}: {e}") from e
    return backend_class()


def build_container(backends=None):
    """
    Build a container from ``settings.MAIL_SYNC`` (or ``backends``).

    Returns:
        ServiceContainer

    Raises:
        ConfigError: If a backend path cannot be imported
    """
    configured = {**DEFAULT_BACKENDS, **getattr(settings, "MAIL_SYNC", {})}
    configured.update(backends or {})

    container = ServiceContainer(
        store=_load_backend("DOCUMENT_STORE", configured["DOCUMENT_STORE"]),
        auth_verifier=_load_backend("AUTH_VERIFIER", configured["AUTH_VERIFIER"]),
    )
    logger.debug(
        "Built mail sync container",
        extra={
            "store": configured["DOCUMENT_STORE"],
            "auth_verifier": configured["AUTH_VERIFIER"],
        },
    )
    return container


def get_container():
    """Return the container of the installed ``mail_sync`` app."""
    return apps.get_app_config("mail_sync").container
