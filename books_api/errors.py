"""
Error taxonomy for the book records service.

Every error carries the HTTP status code it maps to, so the application
needs a single exception handler to render them.
"""

from fastapi import status


class BookServiceError(Exception):
    """Base class for errors that terminate a request."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookServiceError):
    """Malformed request body."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(BookServiceError):
    """Missing or invalid credential."""

    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(BookServiceError):
    """Id absent from the persisted table."""

    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(BookServiceError):
    """Any database call failure. Carries the driver message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
