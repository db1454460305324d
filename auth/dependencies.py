"""
auth/dependencies.py -- Per-request access-token gate and FastAPI Depends() helpers.

RequestAuthenticator is stateless: it opens the access token, checks expiry
and issuer, and returns an Identity. It never reads the User Store, so an
access token stays usable until it expires even after logout -- that is why
access TTLs are minutes and refresh TTLs are days.

The token is read from, in priority order:
  1. "access_token" cookie -- set by verify-otp / login / refresh.
  2. Authorization: Bearer <token> header -- non-browser API clients.

get_current_identity() raises 401 (UnauthorizedError) and attaches the
Identity to request.state.identity. require_role() wraps it and raises 403
(ForbiddenError) on a role mismatch. Both errors are rendered by the
AuthError handler in api/main.py.

Layer rule: auth/dependencies.py may import from fastapi (Request) because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from fastapi import Request

from auth.errors import ForbiddenError, TokenInvalidError, UnauthorizedError
from auth.models import Identity
from auth.sessions import utcnow
from auth.tokens import ACCESS_COOKIE, TokenCodec, read_claims, validate_claims

logger = logging.getLogger("questrider.auth")


class RequestAuthenticator:
    def __init__(self, codec: TokenCodec, issuer: str, clock: Callable[[], datetime] = utcnow) -> None:
        self.codec = codec
        self.issuer = issuer
        self._clock = clock

    def authenticate(self, token: str | None) -> Identity:
        if not token:
            raise UnauthorizedError("No access token found", reason="missing")
        try:
            claims = read_claims(self.codec, token)
        except TokenInvalidError as exc:
            raise UnauthorizedError("Invalid or tampered token", reason="invalid") from exc
        validate_claims(claims, issuer=self.issuer, now=self._clock(), kind="access")
        return Identity(user_id=claims.user_id, email=claims.email, role=claims.role)


def extract_access_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_identity(request: Request) -> Identity:
    """Require a valid access token. Raises UnauthorizedError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    authenticator: RequestAuthenticator = request.app.state.authenticator
    try:
        identity = authenticator.authenticate(extract_access_token(request))
    except UnauthorizedError as exc:
        logger.debug("Rejected %s %s: %s", request.method, request.url.path, exc.reason)
        raise
    request.state.identity = identity
    return identity


def require_role(role: str) -> Callable[[Request], Identity]:
    """Build a dependency that requires the caller's role to equal `role`.

    Use as a FastAPI dependency:
        @router.post("/courses")
        def route(identity: Identity = Depends(require_role("admin"))): ...
    """

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        if identity.role != role:
            raise ForbiddenError(f"Required role was {role}, but user role is {identity.role}")
        return identity

    return dependency
