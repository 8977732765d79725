"""
Bearer credential verification.

The identity provider is pluggable through the IDENTITY_BACKEND setting. A
backend exposes ``verify(credential) -> principal_id`` and raises
Unauthorized for anything it cannot vouch for.

JWTBackend is the built-in provider: credentials are simplejwt access tokens
(signing key, algorithm and lifetime from SIMPLE_JWT) whose user id claim is
the principal id. Development tokens come from ``manage.py issue_token``.
"""

from functools import lru_cache

from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from .exceptions import Unauthorized


class JWTBackend:

    def issue(self, principal_id):
        token = AccessToken()
        token[api_settings.USER_ID_CLAIM] = str(principal_id)
        return str(token)

    def verify(self, credential):
        if not credential:
            raise Unauthorized("Unauthorized: No token provided")
        try:
            token = AccessToken(credential)
        except TokenError:
            raise Unauthorized(self.rejection_reason(credential))

        principal_id = token.get(api_settings.USER_ID_CLAIM)
        if not principal_id:
            raise Unauthorized("Unauthorized: Invalid token")
        return str(principal_id)

    @staticmethod
    def rejection_reason(credential):
        """Pick the message for a token that already failed verification."""
        try:
            claims = AccessToken(credential, verify=False)
        except TokenError:
            return "Unauthorized: Invalid token"
        expires = claims.get("exp")
        if expires is not None and expires <= timezone.now().timestamp():
            return "Unauthorized: Token expired"
        return "Unauthorized: Invalid token"


@lru_cache(maxsize=None)
def _load_backend(path):
    return import_string(path)()


def get_identity_backend(path=None):
    return _load_backend(path or settings.IDENTITY_BACKEND)
