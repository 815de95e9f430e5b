"""Exception types raised by the storefront core."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for errors the HTTP layer knows how to render."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(StoreError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(StoreError):
    """Credentials were rejected. The message never says which part was wrong."""

    status_code = 401
    default_message = "Invalid email or password"


class ForbiddenError(StoreError):
    status_code = 403
    default_message = "Admin access required"


class NotFoundError(StoreError):
    status_code = 404
    default_message = "Not found"


class FormatError(StoreError):
    """A stored hash or a presented token is structurally invalid."""

    status_code = 400
    default_message = "Malformed value"
