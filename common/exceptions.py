"""
Error types shared by the HMS apps.

Services raise ``DomainError`` (or one of its subclasses) when a business
rule rejects an operation. The DRF exception handler below turns both those
and the framework's own exceptions into the standard response envelope:

    {'success': False, 'error': <message>, ...}
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """A business rule rejected the requested operation."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, status_code=None, **extra):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def as_response(self):
        payload = {'success': False, 'error': self.message}
        payload.update(self.extra)
        return Response(payload, status=self.status_code)


class UnprocessableError(DomainError):
    """Request is well formed but conflicts with the record's state."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ResourceNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


def envelope_exception_handler(exc, context):
    """Wrap every API error in the ``success/error`` envelope."""
    if isinstance(exc, DomainError):
        return exc.as_response()

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception(
            f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {exc}"
        )
        return Response({
            'success': False,
            'error': 'An unexpected error occurred'
        }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    data = response.data
    if isinstance(data, dict) and set(data.keys()) == {'detail'}:
        response.data = {'success': False, 'error': str(data['detail'])}
    else:
        response.data = {
            'success': False,
            'error': 'Validation failed',
            'errors': data
        }
    return response
