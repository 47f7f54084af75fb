"""
auth/errors.py -- Domain error taxonomy for authentication and sessions.

Every client-facing failure is an AuthError subclass carrying the HTTP status
and a machine-readable code. api/main.py maps them onto the standard
{"error": {...}} envelope. Anything that is NOT an AuthError is, by
definition, an internal failure and must never reach the client verbatim --
SessionService wraps such exceptions into InternalError.

HashingError and TokenInvalidError are low-level signals raised by
auth/tokens.py. They are not HTTP errors on their own; the gate and the
service decide what they mean for the caller.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors that map to a client-facing HTTP response."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConflictError(AuthError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Access Denied"


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"


class HashingError(Exception):
    """Raised when a value cannot be hashed (wrong type, unsupported bytes)."""


class TokenInvalidError(Exception):
    """Raised when a JWT fails signature, format, claim or expiry checks."""
