"""
Domain exceptions shared by the API apps.

Services raise these; views turn them into ``{'error': message}`` responses
with the exception's HTTP status.
"""
from rest_framework import status
from rest_framework.response import Response


class DomainError(Exception):
    """Base class for business-rule failures."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


def error_response(exc: DomainError) -> Response:
    """Render a DomainError the way every endpoint reports errors."""
    body = {'error': exc.message}
    if exc.details:
        body.update(exc.details)
    return Response(body, status=exc.status_code)
