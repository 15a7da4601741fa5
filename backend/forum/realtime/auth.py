"""JWT authentication for the forum WebSocket.

Browsers cannot set arbitrary headers on a WebSocket handshake, so the access
token is passed as a query param: `ws(s)://host/ws/forum/?token=<access>`.

This middleware resolves the token into ``scope["user"]`` and records why a
handshake is unauthenticated in ``scope["auth_error"]``:
- TOKEN_MISSING: no token in the query string
- TOKEN_INVALID: malformed, expired or for a user that no longer exists

The consumer turns those into close codes; the middleware never closes.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware

logger = logging.getLogger(__name__)

TOKEN_MISSING = 'missing'
TOKEN_INVALID = 'invalid'


def _anonymous_user():
    # Lazy import: Django may not be initialized when this module is imported by Daphne.
    from django.contrib.auth.models import AnonymousUser

    return AnonymousUser()


@database_sync_to_async
def _get_user(user_id):
    from django.contrib.auth import get_user_model

    UserModel = get_user_model()
    try:
        return UserModel.objects.get(pk=user_id, is_active=True)
    except UserModel.DoesNotExist:
        return None


def _token_from_scope(scope):
    raw_qs = scope.get("query_string", b"")
    try:
        query = parse_qs(raw_qs.decode("utf-8"))
    except UnicodeDecodeError:
        return None
    token = (query.get("token") or [""])[0].strip()
    return token or None


async def resolve_user(token):
    """Return the active user for an access token, or None if it is not valid."""
    # Lazy import: pulls in DRF/SimpleJWT settings.
    from rest_framework_simplejwt.exceptions import TokenError
    from rest_framework_simplejwt.settings import api_settings
    from rest_framework_simplejwt.tokens import AccessToken

    try:
        validated = AccessToken(token)
    except TokenError as exc:
        logger.info("Rejected forum WebSocket token: %s", exc)
        return None

    user_id = validated.get(api_settings.USER_ID_CLAIM)
    if user_id is None:
        return None
    return await _get_user(user_id)


class JwtQueryAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        scope["auth_error"] = None

        token = _token_from_scope(scope)
        if token is None:
            scope["user"] = _anonymous_user()
            scope["auth_error"] = TOKEN_MISSING
        else:
            user = await resolve_user(token)
            if user is None:
                scope["user"] = _anonymous_user()
                scope["auth_error"] = TOKEN_INVALID
            else:
                scope["user"] = user

        return await super().__call__(scope, receive, send)


def JwtQueryAuthMiddlewareStack(inner):
    """Helper to mirror Channels' AuthMiddlewareStack pattern."""

    return JwtQueryAuthMiddleware(inner)
