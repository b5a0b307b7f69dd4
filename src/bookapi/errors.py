"""
Error taxonomy for BookAPI.

Stores and services raise these exceptions; the API layer turns them into
the standard response envelope (see api/main.py).
"""
from typing import Optional


class BookAPIError(Exception):
    """Base class for all expected, request-scoped failures."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, public_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        # Message shown to API clients when it must differ from the internal one
        self.public_message = public_message or message


class NotFoundError(BookAPIError):
    """Entity absent."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(BookAPIError):
    """Uniqueness violation on username, email or ISBN."""

    status_code = 409
    code = "CONFLICT"


class UnauthorizedError(BookAPIError):
    """Bad credential or bad MFA code at login."""

    status_code = 401
    code = "UNAUTHORIZED"


class InvalidInputError(BookAPIError):
    """Malformed or wrong verification / backup code."""

    status_code = 400
    code = "INVALID_INPUT"


class ForbiddenError(BookAPIError):
    """
    Ownership check failure on a device operation.

    Reported as 404 at the API boundary so non-owners cannot discover
    which device IDs exist.
    """

    status_code = 404
    code = "NOT_FOUND"
