"""API views for mailbox synchronization, sending and account settings."""

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from webmail_core.utils.logging import ContextLogger

from .auth import ensure_same_user
from .container import get_container
from .exceptions import ChannelError, MailSyncError
from .serializers import (
    AccountSerializer,
    SelectRequestSerializer,
    SendRequestSerializer,
    SyncRequestSerializer,
    TestConnectionSerializer,
)

logger = ContextLogger(__name__)


def api_exception_handler(exc, context):
    """
    Render every error as ``{"error": "<generic message>"}``.

    Stage, cause and stack trace are logged here and never sent to clients.
    """
    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else None

    if isinstance(exc, MailSyncError):
        details = {"view": view_name, "error_type": exc.__class__.__name__, "error": str(exc)}
        if isinstance(exc, ChannelError):
            details.update(protocol=str(exc.protocol), stage=str(exc.stage))
        if exc.status_code >= 500:
            logger.error("Request failed", extra=details)
        else:
            logger.warning("Request rejected", extra=details)
        return Response(exc.to_payload(), status=exc.status_code)

    if isinstance(exc, ValidationError):
        fields = sorted(exc.detail) if isinstance(exc.detail, dict) else []
        message = "Invalid request"
        if fields:
            message = f"Invalid request: {', '.join(fields)}"
        return Response({"error": message}, status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data.get("detail") if isinstance(response.data, dict) else None
        response.data = {"error": str(detail) if detail else "Request failed"}
        return response

    logger.exception("Unhandled error in API view", extra={"view": view_name})
    return Response(
        {"error": MailSyncError.public_message},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class MailSyncAPIView(APIView):
    """Base view exposing the verified user id and the service container."""

    @property
    def user_id(self):
        return self.request.user.user_id

    @property
    def container(self):
        return get_container()

    def validated(self, serializer_class, **kwargs):
        serializer = serializer_class(data=self.request.data, **kwargs)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ensure_same_user(self.user_id, data.get("userId"))
        return data


class SyncView(MailSyncAPIView):
    """POST: synchronize one account's inbox."""

    def post(self, request):
        data = self.validated(SyncRequestSerializer)
        result = self.container.sync_service.sync(self.user_id, data["accountId"])
        return Response(result.to_payload())


class SendView(MailSyncAPIView):
    """POST: send a message from one of the caller's accounts."""

    def post(self, request):
        data = self.validated(SendRequestSerializer)
        result = self.container.send_service.send(
            self.user_id,
            data["accountId"],
            to=data["to"],
            subject=data["subject"],
            content=data["content"],
            attachments=data.get("attachments"),
            email_id=data.get("emailId") or None,
        )
        return Response(result.to_payload())


class SelectView(MailSyncAPIView):
    """POST: set or clear the ``selected`` flag on several emails."""

    def post(self, request):
        data = self.validated(SelectRequestSerializer)
        updated = self.container.mailbox_service.set_selected(
            self.user_id, data["emailIds"], data["selected"]
        )
        return Response({"updatedCount": updated, "selected": data["selected"]})


class AccountListView(MailSyncAPIView):
    """GET: list the caller's accounts. POST: create one."""

    def get(self, request):
        accounts = self.container.account_service.list_accounts(self.user_id)
        return Response([account.to_public_dict() for account in accounts])

    def post(self, request):
        data = dict(self.validated(AccountSerializer))
        account = self.container.account_service.create_account(
            self.user_id, data.pop("email"), data.pop("password"), **data
        )
        return Response(account.to_public_dict(), status=status.HTTP_201_CREATED)


class AccountDetailView(MailSyncAPIView):
    """PATCH: update an account. DELETE: remove it."""

    def patch(self, request, account_id):
        data = dict(self.validated(AccountSerializer, partial=True))
        account = self.container.account_service.update_account(
            self.user_id, account_id, password=data.pop("password", None), **data
        )
        return Response(account.to_public_dict())

    def delete(self, request, account_id):
        self.container.account_service.delete_account(self.user_id, account_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TestConnectionView(MailSyncAPIView):
    """POST: check server settings before saving an account."""

    def post(self, request):
        data = self.validated(TestConnectionSerializer)
        self.container.account_service.test_connection(
            data["protocol"],
            data["host"],
            data["port"],
            data["useTLS"],
            data["username"],
            data["password"],
        )
        return Response({"success": True, "message": "Connection successful"})
