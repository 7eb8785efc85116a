"""
Authentication for the mail_sync API.

The identity provider is consumed through ``AuthVerifier.verify(token)``,
which returns the verified user id. ``BearerTokenAuthentication`` exposes the
configured verifier to Django REST framework as ``Authorization: Bearer``.
"""

import abc
from dataclasses import dataclass

from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings as jwt_settings
from rest_framework_simplejwt.tokens import AccessToken

from webmail_core.utils.logging import ContextLogger

from .exceptions import AuthenticationError, AuthorizationError

logger = ContextLogger(__name__)


class AuthVerifier(abc.ABC):
    """Turns a bearer token into a user id."""

    @abc.abstractmethod
    def verify(self, token):
        """
        Return the user id the token was issued to.

        Raises:
            AuthenticationError: If the token is missing, expired or invalid
        """
        raise NotImplementedError


class JWTAuthVerifier(AuthVerifier):
    """Validates SimpleJWT access tokens and reads the user id claim."""

    def verify(self, token):
        if not token:
            raise AuthenticationError("Missing bearer token")

        try:
            access_token = AccessToken(token)
        except TokenError as e:
            logger.warning("Rejected access token", extra={"error": str(e)})
            raise AuthenticationError(f"Invalid access token: {e}") from e

        user_id = access_token.get(jwt_settings.USER_ID_CLAIM)
        if not user_id:
            raise AuthenticationError("Access token carries no user id")
        return str(user_id)


@dataclass
class Principal:
    """The authenticated caller. Only the user id is known to this service."""

    user_id: str

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def id(self):
        return self.user_id


class BearerTokenAuthentication(BaseAuthentication):
    """
    DRF authentication class backed by the container's ``AuthVerifier``.
    """

    keyword = "Bearer"

    def authenticate(self, request):
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            raise exceptions.AuthenticationFailed(AuthenticationError.public_message)

        try:
            token = auth[1].decode("utf-8")
        except UnicodeError:
            raise exceptions.AuthenticationFailed(AuthenticationError.public_message)

        # Imported here: the container is built when the app registry is ready
        from .container import get_container

        try:
            user_id = get_container().auth_verifier.verify(token)
        except AuthenticationError as e:
            raise exceptions.AuthenticationFailed(e.public_message) from e

        return Principal(user_id=user_id), token

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'


def ensure_same_user(verified_user_id, claimed_user_id):
    """
    Reject a request body that names a different user than the token.

    Raises:
        AuthorizationError: If ``claimed_user_id`` is set and differs
    """
    if claimed_user_id and str(claimed_user_id) != str(verified_user_id):
        logger.warning(
            "Request body names a different user than the token",
            extra={"user_id": verified_user_id},
        )
        raise AuthorizationError(
            f"User {verified_user_id} attempted to act as {claimed_user_id}"
        )
