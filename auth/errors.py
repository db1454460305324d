"""
auth/errors.py -- Error taxonomy for the auth engine.

Every public engine operation either returns a result or raises exactly one
AuthError subclass. Each class carries a stable machine-readable code and the
HTTP status the API layer maps it to, so routes never translate errors by hand.

  ConflictError          409  duplicate activated account
  UnauthorizedError      401  bad credentials, bad/expired/foreign tokens, reuse
  ForbiddenError         403  role mismatch
  NotFoundError          404  missing pending record or user
  StoreUnavailableError  503  store timeout / connection failure (transient)

TokenInvalidError is the codec's own failure. It is not part of the taxonomy:
callers convert it to UnauthorizedError before it can reach a client.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all client-reportable auth failures."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConflictError(AuthError):
    code = "conflict"
    status_code = 409
    default_message = "Conflict."


class UnauthorizedError(AuthError):
    """401. reason is internal: it is logged and asserted in tests, never sent to clients.

    Known reasons: missing, invalid, expired, wrong_issuer, bad_credentials, reuse.
    """

    code = "unauthorized"
    status_code = 401
    default_message = "Unauthorized."

    def __init__(self, message: str | None = None, *, reason: str = "invalid") -> None:
        super().__init__(message)
        self.reason = reason


class ForbiddenError(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "Forbidden."


class NotFoundError(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class StoreUnavailableError(AuthError):
    """The persistent store timed out or refused the connection.

    The message is generic; the underlying driver error is
    chained (raise ... from exc) and logged, never returned to the caller.
    """

    code = "service_unavailable"
    status_code = 503
    default_message = "The service is temporarily unavailable. Please retry."


class TokenInvalidError(Exception):
    """Raised by TokenCodec.open() when a sealed token fails authentication."""
