"""
auth/engine.py -- Registration, login, refresh and session operations.

AuthEngine is the one object the HTTP layer (and the admin CLI) talks to. It
owns no global state: build_auth_engine() wires the SQLAlchemy engine, both
stores, the token codec, the password hasher and the delivery channel from
Settings at process start, and close() disposes the connection pool at
shutdown.

Onboarding state machine, per email:

    (none) --register--> pending --verify_otp--> activated
       ^                  |  ^
       |                  |  +--resend_otp (new code, new expiry)
       +--register again--+     (old record deleted, old code dead)

    pending --(now > expires_at)--> expired --resend_otp--> pending

Security:
  verify_otp() reports wrong email and wrong code with the same error, and
  login() runs the password hasher even for unknown emails, so neither call
  reveals which addresses are registered.

  refresh() is the rotation point. A refresh token that authenticates and has
  not expired but is not the user's stored token is treated as stolen or
  replayed: the stored token is cleared and the user must log in again.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.engine import Engine

from auth.codes import generate_code
from auth.delivery import CodeDelivery, LoggingCodeDelivery, redact_email
from auth.errors import ConflictError, NotFoundError, TokenInvalidError, UnauthorizedError
from auth.models import AuthResult, OnboardingState, PendingRegistration, User, UserSummary
from auth.passwords import PasswordHasher
from auth.sessions import SessionIssuer, utcnow
from auth.store import OnboardingStore, UserStore, create_store_engine
from auth.tokens import TokenCodec, read_claims, validate_claims

logger = logging.getLogger("questrider.auth")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthEngine:
    """Onboarding, login and session lifecycle.

    Every public method returns a result or raises exactly one AuthError
    subclass (see auth/errors.py).
    """

    def __init__(
        self,
        *,
        users: UserStore,
        onboarding: OnboardingStore,
        sessions: SessionIssuer,
        hasher: PasswordHasher,
        delivery: CodeDelivery | None = None,
        default_role: str = "student",
        otp_ttl: timedelta = timedelta(minutes=10),
        otp_length: int = 6,
        clock: Callable[[], datetime] = utcnow,
        db: Engine | None = None,
    ) -> None:
        self.users = users
        self.onboarding = onboarding
        self.sessions = sessions
        self.hasher = hasher
        self.delivery = delivery or LoggingCodeDelivery()
        self.default_role = default_role
        self.otp_ttl = otp_ttl
        self.otp_length = otp_length
        self._clock = clock
        self._db = db

    # ------------------------------------------------------------------
    # Onboarding
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str, phone_number: str) -> None:
        """Start (or restart) registration for email and send a fresh code.

        Raises ConflictError if an account already owns the email; in that
        case no pending record is written.
        """
        email = normalize_email(email)
        if self.users.exists(email):
            raise ConflictError("User with given email already exists")

        code = generate_code(self.otp_length)
        self.onboarding.replace(
            PendingRegistration(
                email=email,
                name=name,
                phone_number=phone_number,
                hashed_password=self.hasher.hash(password),
                code=code,
                expires_at=self._clock() + self.otp_ttl,
            )
        )
        logger.debug("Onboarding record created for %s", redact_email(email))
        self._deliver(email, code)

    def verify_otp(self, email: str, code: str) -> AuthResult:
        """Activate the pending registration for (email, code) and log the new user in."""
        email = normalize_email(email)
        pending = self.onboarding.find(email, code)
        if pending is None:
            raise UnauthorizedError("Invalid OTP or email", reason="invalid")
        if pending.is_expired(self._clock()):
            raise UnauthorizedError("OTP has expired", reason="expired")

        user = User(
            email=pending.email,
            name=pending.name,
            phone_number=pending.phone_number,
            hashed_password=pending.hashed_password,
            role=self.default_role,
        )
        try:
            user.id = self.users.create_user(user)
        except ConflictError:
            # An account already exists (concurrent verify, or a crash between
            # create and delete last time). Drop the stale record so a retry
            # converges instead of looping on the same conflict.
            self.onboarding.delete(email, code)
            raise
        self.onboarding.delete(email, code)
        logger.info("User %s activated with role %s", user.id, user.role)
        return self.sessions.issue(user)

    def resend_otp(self, email: str) -> None:
        """Issue a new code for a pending registration and reset its expiry."""
        email = normalize_email(email)
        pending = self.onboarding.get(email)
        if pending is None:
            raise NotFoundError("No pending registration found for this email")
        if self.users.exists(email):
            raise ConflictError("User with given email already exists")

        code = generate_code(self.otp_length)
        while hmac.compare_digest(code, pending.code):
            code = generate_code(self.otp_length)
        if not self.onboarding.update_code(email, code, self._clock() + self.otp_ttl):
            # Verified or superseded between the read and the write.
            raise NotFoundError("No pending registration found for this email")
        self._deliver(email, code)

    def onboarding_state(self, email: str) -> OnboardingState:
        email = normalize_email(email)
        if self.users.exists(email):
            return OnboardingState.activated
        pending = self.onboarding.get(email)
        if pending is None:
            return OnboardingState.none
        if pending.is_expired(self._clock()):
            return OnboardingState.expired
        return OnboardingState.pending

    # ------------------------------------------------------------------
    # Login / sessions
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        """Password login. Unknown email and wrong password fail identically."""
        user = self.users.get_by_email(normalize_email(email))
        if user is None:
            # Equalize timing -- do NOT return before running the hasher.
            self.hasher.verify(self.hasher.dummy_hash, password)
            raise UnauthorizedError("Invalid email or password", reason="bad_credentials")
        if not self.hasher.verify(user.hashed_password, password):
            raise UnauthorizedError("Invalid email or password", reason="bad_credentials")
        self.users.update_last_login(user.id)
        return self.sessions.issue(user)

    def refresh(self, presented: str) -> AuthResult:
        """Exchange the user's current refresh token for a brand-new pair.

        The old token is dead afterwards. Presenting it again (or any token
        that is not the stored one) ends the session for that user.
        """
        try:
            claims = read_claims(self.sessions.codec, presented)
        except TokenInvalidError as exc:
            raise UnauthorizedError("Invalid refresh token", reason="invalid") from exc
        validate_claims(claims, issuer=self.sessions.issuer, now=self._clock(), kind="refresh")

        user = self.users.get_by_id(claims.user_id)
        if user is None:
            raise UnauthorizedError("Invalid refresh token", reason="invalid")

        stored = user.refresh_token or ""
        if stored and hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8")):
            result = self.sessions.rotate(user, presented)
            if result is not None:
                return result

        self.users.clear_refresh_token(user.id)
        logger.warning("Refresh token reuse detected for user %s; session revoked", user.id)
        raise UnauthorizedError("Invalid refresh token", reason="reuse")

    def logout(self, user_id: str) -> None:
        """Clear the stored refresh token. Idempotent, also for unknown ids."""
        self.users.clear_refresh_token(user_id)

    def get_session(self, user_id: str) -> UserSummary:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserSummary.from_user(user)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def create_user(self, email: str, password: str, name: str, phone_number: str | None, role: str) -> UserSummary:
        """Create an already-activated account, bypassing onboarding. Used by the admin CLI."""
        user = User(
            email=normalize_email(email),
            name=name,
            phone_number=phone_number,
            hashed_password=self.hasher.hash(password),
            role=role,
        )
        user.id = self.users.create_user(user)
        return UserSummary.from_user(user)

    def purge_expired_registrations(self) -> int:
        removed = self.onboarding.purge_expired(self._clock())
        if removed:
            logger.info("Purged %d expired pending registration(s)", removed)
        return removed

    def close(self) -> None:
        if self._db is not None:
            self._db.dispose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _deliver(self, email: str, code: str) -> None:
        try:
            self.delivery.send(email, code)
        except Exception:
            logger.exception("Code delivery failed for %s", redact_email(email))


def build_auth_engine(
    settings,
    *,
    delivery: CodeDelivery | None = None,
    hasher: PasswordHasher | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> AuthEngine:
    """Wire an AuthEngine from Settings. Call close() on the result at shutdown."""
    db = create_store_engine(settings.database_url, settings.store_timeout_seconds)
    users = UserStore(db)
    sessions = SessionIssuer(
        TokenCodec.from_secret(settings.secret_key),
        users,
        issuer=settings.token_issuer,
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        clock=clock,
    )
    return AuthEngine(
        users=users,
        onboarding=OnboardingStore(db),
        sessions=sessions,
        hasher=hasher or PasswordHasher(),
        delivery=delivery,
        default_role=settings.default_role,
        otp_ttl=timedelta(minutes=settings.otp_expire_minutes),
        otp_length=settings.otp_length,
        clock=clock,
        db=db,
    )
