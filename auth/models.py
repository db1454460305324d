"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
the domain shape; stores, the session issuer and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    educator = "educator"
    student = "student"


class OnboardingState(str, Enum):
    """Where an email sits in the registration flow.

    none      -- no pending record and no account
    pending   -- a pending record with a live code
    expired   -- a pending record whose code has passed expires_at
    activated -- an account exists (any pending record is stale)
    """

    none = "none"
    pending = "pending"
    expired = "expired"
    activated = "activated"


@dataclass
class User:
    """An activated account.

    refresh_token is the single authoritative refresh token for this user.
    None means the user has no live session (never logged in, logged out,
    or a reused token forced a full re-login).
    """

    email: str
    name: str
    hashed_password: str
    role: str
    id: str | None = None
    phone_number: str | None = None
    refresh_token: str | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass
class PendingRegistration:
    """A registration waiting for its one-time code. At most one per email."""

    email: str
    name: str
    phone_number: str
    hashed_password: str
    code: str
    expires_at: datetime
    created_at: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class TokenClaims:
    """The payload sealed inside both access and refresh tokens.

    to_payload() / from_payload() define the wire shape. expires_at travels as
    an ISO-8601 string so the payload stays plain JSON.
    """

    user_id: str
    email: str
    role: str
    expires_at: datetime
    issuer: str

    def to_payload(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "expires_at": self.expires_at.isoformat(),
            "issuer": self.issuer,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenClaims":
        """Build claims from an opened payload. Raises KeyError/ValueError/TypeError on bad shape."""
        expires_at = datetime.fromisoformat(payload["expires_at"])
        if expires_at.tzinfo is None:
            raise ValueError("expires_at must carry a UTC offset")
        return cls(
            user_id=str(payload["user_id"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            expires_at=expires_at,
            issuer=str(payload["issuer"]),
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class UserSummary:
    """Public-safe view of a User. Never carries the password hash or tokens."""

    id: str
    email: str
    name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(id=user.id or "", email=user.email, name=user.name, role=user.role)


@dataclass(frozen=True)
class AuthResult:
    user: UserSummary
    tokens: TokenPair


@dataclass(frozen=True)
class Identity:
    """What the request authenticator attaches to a request after a valid access token."""

    user_id: str
    email: str
    role: str
