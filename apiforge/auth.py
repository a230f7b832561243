"""
Authentication and authorization for apiforge.

Identity is resolved by a Starlette ``AuthenticationBackend``. Without an
identity provider nobody is authenticated: ``AnonymousBackend`` is installed
and mutations guarded by ``IsAuthenticated`` are denied. Behind a gateway
that sets ``X-Forwarded-User`` and ``X-Forwarded-Scopes`` (and strips them
from client requests), ``Authentication.TrustForwardedIdentity`` selects
``ForwardedIdentityBackend``. Deployments with their own identity provider
pass a different backend to ``create_app``.
"""

from __future__ import annotations

from typing import Optional, Tuple

from starlette.authentication import (
    AuthCredentials,
    AuthenticationBackend,
    BaseUser,
    SimpleUser,
)
from starlette.requests import HTTPConnection

from apiforge.constants import HeaderName
from apiforge.options import AuthenticationOptions


class AnonymousBackend(AuthenticationBackend):
    async def authenticate(
        self, conn: HTTPConnection
    ) -> Optional[Tuple[AuthCredentials, BaseUser]]:
        return None


class ForwardedIdentityBackend(AuthenticationBackend):
    async def authenticate(
        self, conn: HTTPConnection
    ) -> Optional[Tuple[AuthCredentials, BaseUser]]:
        name = conn.headers.get(HeaderName.FORWARDED_USER, "").strip()
        if not name:
            return None
        raw_scopes = conn.headers.get(HeaderName.FORWARDED_SCOPES, "")
        scopes = [scope.strip() for scope in raw_scopes.split(",") if scope.strip()]
        return AuthCredentials(scopes), SimpleUser(name)


def default_backend(options: AuthenticationOptions) -> AuthenticationBackend:
    if options.trust_forwarded_identity:
        return ForwardedIdentityBackend()
    return AnonymousBackend()


def is_authenticated(conn: HTTPConnection) -> bool:
    """True when the authentication middleware resolved a user."""
    if "user" not in conn.scope:
        return False
    return bool(conn.user.is_authenticated)


__all__ = [
    "AnonymousBackend",
    "ForwardedIdentityBackend",
    "default_backend",
    "is_authenticated",
]
