"""
Error taxonomy for the forum.

Every error is a DRF APIException, so REST views get the right status code
for free and the WebSocket consumer can turn any of them into an error frame.
"""
import logging

from django.db import DatabaseError
from rest_framework import exceptions, status
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class AuthenticationError(exceptions.AuthenticationFailed):
    default_detail = 'Please sign in again.'
    default_code = 'authentication_failed'


class AuthorizationError(exceptions.PermissionDenied):
    default_detail = 'You are not allowed to modify this item.'
    default_code = 'not_authorized'


class NotFoundError(exceptions.NotFound):
    default_code = 'not_found'


class ValidationError(exceptions.ValidationError):
    default_code = 'invalid'


class TransientStoreError(exceptions.APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The forum store is temporarily unavailable. Try again later.'
    default_code = 'store_unavailable'


def error_message(exc):
    """Flatten an APIException detail into a single human readable string."""
    detail = exc.detail
    if isinstance(detail, dict):
        parts = []
        for field, messages in detail.items():
            if not isinstance(messages, (list, tuple)):
                messages = [messages]
            parts.append(f"{field}: {' '.join(str(m) for m in messages)}")
        return '; '.join(parts)
    if isinstance(detail, (list, tuple)):
        return ' '.join(str(m) for m in detail)
    return str(detail)


def error_code(exc):
    code = getattr(exc, 'default_code', 'error')
    if isinstance(exc, exceptions.ValidationError):
        return ValidationError.default_code
    return code


def forum_exception_handler(exc, context):
    """
    DRF exception handler that reports store outages as 503.

    Nothing is retried server side; retrying is left to the client.
    """
    if isinstance(exc, DatabaseError):
        logger.exception("Forum store error while handling %s", context.get('view'))
        exc = TransientStoreError()
    return exception_handler(exc, context)
