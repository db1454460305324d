"""
auth/sessions.py -- Token pair issuance and refresh-token rotation.

Every successful login, verification or refresh ends here. issue() and
rotate() both seal a fresh access/refresh pair from the same claims (only
expires_at differs) and store the new refresh token on the user:

  issue()  -- unconditional overwrite. Any previous refresh token for the
              user stops working immediately.
  rotate() -- compare-and-set against the token being presented. If another
              request rotated or cleared it first, nothing is written and
              None is returned; the engine treats that as reuse.

The stored refresh token, not the sealed expiry, decides whether a refresh
token is still good.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import AuthResult, TokenClaims, TokenPair, User, UserSummary
from auth.store import UserStore
from auth.tokens import TokenCodec


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionIssuer:
    def __init__(
        self,
        codec: TokenCodec,
        users: UserStore,
        *,
        issuer: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.codec = codec
        self.users = users
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    def seal_pair(self, user: User) -> TokenPair:
        """Seal a new access/refresh pair for user without persisting anything."""
        now = self._clock()
        access = TokenClaims(
            user_id=user.id,
            email=user.email,
            role=user.role,
            expires_at=now + self.access_ttl,
            issuer=self.issuer,
        )
        refresh = TokenClaims(
            user_id=user.id,
            email=user.email,
            role=user.role,
            expires_at=now + self.refresh_ttl,
            issuer=self.issuer,
        )
        return TokenPair(
            access_token=self.codec.seal(access.to_payload()),
            refresh_token=self.codec.seal(refresh.to_payload()),
        )

    def issue(self, user: User) -> AuthResult:
        """Seal a pair and make its refresh token the user's only valid one."""
        tokens = self.seal_pair(user)
        self.users.set_refresh_token(user.id, tokens.refresh_token)
        return AuthResult(user=UserSummary.from_user(user), tokens=tokens)

    def rotate(self, user: User, presented: str) -> AuthResult | None:
        """Replace `presented` with a fresh pair in one conditional update.

        Returns None if `presented` was no longer the stored token by the time
        the update ran.
        """
        tokens = self.seal_pair(user)
        if not self.users.swap_refresh_token(user.id, presented, tokens.refresh_token):
            return None
        return AuthResult(user=UserSummary.from_user(user), tokens=tokens)
