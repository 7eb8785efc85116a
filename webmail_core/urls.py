"""URL configuration for the webmail backend."""

from django.urls import include, path

from .health import health_check

urlpatterns = [
    path("health/", health_check, name="health_check"),
    path("api/email/", include("mail_sync.urls")),
]
