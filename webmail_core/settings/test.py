"""Test-specific settings configuration."""

from .base import *

SECRET_KEY = "test-secret-key-not-for-production"

# Use in-memory SQLite for testing speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Use in-memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# Faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

SIMPLE_JWT = {
    **SIMPLE_JWT,
    "SIGNING_KEY": SECRET_KEY,
}

# Tests swap the store per test; the in-memory one needs no migrations.
MAIL_SYNC = {
    "DOCUMENT_STORE": "mail_sync.store.memory.InMemoryDocumentStore",
    "AUTH_VERIFIER": "mail_sync.auth.JWTAuthVerifier",
}

FIELD_ENCRYPTION_KEY = "this-is-a-test-encryption-key-for-unit-tests-only"

# Run Celery tasks inline
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

# Log to console only during tests
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {
            "level": "ERROR",
            "class": "logging.StreamHandler",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": True,
        },
    },
}

# Fewer key-derivation rounds keep the crypto tests fast
EMAIL_KDF_ITERATIONS = 1000
