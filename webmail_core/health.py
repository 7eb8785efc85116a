"""Health check endpoints for monitoring the application status."""

import logging

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django.views.decorators.cache import cache_page
from django.views.decorators.http import require_GET

from mail_sync.container import get_container

logger = logging.getLogger(__name__)


def check_database() -> dict[str, bool | str]:
    """Check database connectivity by executing a simple query."""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            return {"status": True, "message": "Database connection successful"}
    except Exception as e:
        logger.error(f"Database health check failed: {e!s}")
        return {"status": False, "message": "Database error"}


def check_document_store() -> dict[str, bool | str]:
    """Check the configured mail document store."""
    try:
        get_container().store.ping()
        return {"status": True, "message": "Document store reachable"}
    except Exception as e:
        logger.error(f"Document store health check failed: {e!s}")
        return {"status": False, "message": "Document store error"}


def check_redis() -> dict[str, bool | str]:
    """Check Redis connectivity (cache leases and Celery broker)."""
    try:
        r = redis.from_url(settings.REDIS_URL)
        r.ping()
        return {"status": True, "message": "Redis connection successful"}
    except Exception as e:
        logger.error(f"Redis health check failed: {e!s}")
        return {"status": False, "message": "Redis error"}


@require_GET
@cache_page(30)  # Cache results for 30 seconds
def health_check(request) -> JsonResponse:
    """Basic health check endpoint that validates core system components.

    Returns HTTP 200 if all systems are operational, HTTP 503 otherwise.
    """
    checks = [
        {"name": "database", "result": check_database()},
        {"name": "document_store", "result": check_document_store()},
        {"name": "redis", "result": check_redis()},
    ]

    is_healthy = all(check["result"]["status"] for check in checks)

    response_data = {
        "status": "healthy" if is_healthy else "unhealthy",
        "version": getattr(settings, "APP_VERSION", "dev"),
        "checks": checks,
    }

    return JsonResponse(response_data, status=200 if is_healthy else 503)
