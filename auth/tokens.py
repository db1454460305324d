"""
auth/tokens.py -- Sealed token codec, claim validation, and cookie helpers.

Security design decisions:
  Sealing: python-jose JWE compact serialization with alg=dir and
       enc=A256GCM. AES-256-GCM gives confidentiality and integrity in one
       pass: the claims are unreadable without the key, and any bit flip in
       header, IV, ciphertext or tag fails authentication on open().
       The 256-bit content key is SHA-256(SECRET_KEY), computed once at
       startup. SECRET_KEY itself is validated (>= 32 chars) in core/config.py.

  Separation: TokenCodec knows nothing about claim names. It seals and opens
       JSON objects. Expiry and issuer checks live in validate_claims(), which
       both the refresh flow and the request authenticator call, so the two
       paths cannot drift apart.

  Failure reporting: open() raises TokenInvalidError for every failure mode
       (tampered, wrong key, truncated, not JSON). Callers turn that into a
       single UnauthorizedError so a client cannot probe which check failed.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from datetime import datetime

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from auth.errors import TokenInvalidError, UnauthorizedError
from auth.models import TokenClaims, TokenPair

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Authenticated-encryption codec for JSON payloads.

    Usage:
        codec = TokenCodec.from_secret(settings.secret_key)
        token = codec.seal({"user_id": "abc", "role": "student"})
        codec.open(token)   # {"user_id": "abc", "role": "student"}
    """

    KEY_BYTES = 32

    def __init__(self, key: bytes) -> None:
        if len(key) != self.KEY_BYTES:
            raise ValueError(f"Sealing key must be exactly {self.KEY_BYTES} bytes.")
        self._key = key

    @classmethod
    def from_secret(cls, secret: str) -> "TokenCodec":
        """Derive the 256-bit AES key from a configured secret string."""
        if not secret:
            raise ValueError("Token secret cannot be empty")
        return cls(hashlib.sha256(secret.encode("utf-8")).digest())

    def seal(self, payload: Mapping) -> str:
        plaintext = json.dumps(dict(payload), separators=(",", ":"), sort_keys=True).encode("utf-8")
        sealed = jwe.encrypt(plaintext, self._key, algorithm=ALGORITHMS.DIR, encryption=ALGORITHMS.A256GCM)
        return sealed.decode("ascii") if isinstance(sealed, bytes) else sealed

    def open(self, token: str) -> dict:
        """Decrypt and authenticate a sealed token. Raises TokenInvalidError on any failure."""
        if not token or not isinstance(token, str):
            raise TokenInvalidError("Empty token")
        try:
            plaintext = jwe.decrypt(token, self._key)
        except (JOSEError, ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
            raise TokenInvalidError("Token failed authentication") from exc
        if plaintext is None:
            raise TokenInvalidError("Token failed authentication")
        try:
            payload = json.loads(plaintext)
        except ValueError as exc:
            raise TokenInvalidError("Token payload is not JSON") from exc
        if not isinstance(payload, dict):
            raise TokenInvalidError("Token payload is not an object")
        return payload


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


def read_claims(codec: TokenCodec, token: str) -> TokenClaims:
    """Open a token and parse its TokenClaims. Raises TokenInvalidError on any failure."""
    payload = codec.open(token)
    try:
        return TokenClaims.from_payload(payload)
    except (KeyError, ValueError, TypeError) as exc:
        raise TokenInvalidError("Token payload is missing required claims") from exc


def validate_claims(claims: TokenClaims, *, issuer: str, now: datetime, kind: str = "access") -> TokenClaims:
    """Enforce expiry and issuer on claims that already passed authentication.

    An expires_at exactly equal to now is still accepted; one microsecond
    later it is not.
    """
    if claims.expires_at < now:
        raise UnauthorizedError(f"Expired {kind} token", reason="expired")
    if claims.issuer != issuer:
        raise UnauthorizedError("Invalid token issuer", reason="wrong_issuer")
    return claims


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, tokens: TokenPair, *, access_max_age: int, refresh_max_age: int, secure: bool) -> None:
    """Write both tokens as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for the
        refresh and logout endpoints.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the sealed expiry so cookie and token expire together.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=tokens.access_token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=access_max_age,
        path="/",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=refresh_max_age,
        path="/",
    )


def clear_auth_cookies(response) -> None:
    response.delete_cookie(ACCESS_COOKIE, path="/")
    response.delete_cookie(REFRESH_COOKIE, path="/")
