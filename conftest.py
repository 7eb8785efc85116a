"""
Global pytest configuration and fixtures.
"""

import pytest
from django.apps import apps
from django.core.cache import cache
from rest_framework.test import APIClient

from mail_sync.auth import JWTAuthVerifier
from mail_sync.container import ServiceContainer
from mail_sync.store import InMemoryDocumentStore
from mail_sync.tests.factories import make_token, save_account
from mail_sync.utils.crypto import CredentialCipher


@pytest.fixture(autouse=True)
def clear_cache():
    """Leases and cached health responses never leak between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def store():
    """Return an empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def cipher():
    return CredentialCipher()


@pytest.fixture
def container(store, cipher):
    """Install a container around the test store for the duration of a test."""
    app_config = apps.get_app_config("mail_sync")
    previous = app_config.container
    app_config.container = ServiceContainer(
        store=store, auth_verifier=JWTAuthVerifier(), cipher=cipher
    )
    yield app_config.container
    app_config.container = previous


@pytest.fixture
def account(store):
    """An account owned by ``user-1`` stored in the test store."""
    return save_account(store, user_id="user-1")


@pytest.fixture
def api_client():
    """Return an API client for testing API endpoints."""
    return APIClient()


@pytest.fixture
def authenticated_client(container):
    """Return an API client carrying a bearer token for ``user-1``."""
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {make_token('user-1')}")
    return client
