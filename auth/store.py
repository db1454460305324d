"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and OnboardingStore are the repositories; _row_to_user /
_row_to_pending are the mappers. Engine and route code never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) on both tables is the backstop for the onboarding flow: two
  racing verifications for the same email can never produce two accounts,
  the second insert fails and is reported as a conflict.

  swap_refresh_token() is a single conditional UPDATE keyed on the previous
  token value. Two concurrent rotations of the same token cannot both match,
  so exactly one wins and the other sees rowcount == 0.

Timeouts:
  Every connection carries store_timeout_seconds (SQLite busy timeout, pool
  checkout timeout elsewhere). Driver timeouts and connection failures
  surface as StoreUnavailableError instead of hanging the request.

Timestamps are stored as ISO-8601 UTC strings with fixed microsecond
precision, so lexical order in SQL equals chronological order.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import ConflictError, StoreUnavailableError
from auth.models import PendingRegistration, User

logger = logging.getLogger("questrider.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("phone_number", String(32)),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="student"),
    Column("refresh_token", Text),  # NULL = no live session
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_pending = Table(
    "pending_registrations",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("phone_number", String(32), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("code", String(10), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Create the shared SQLAlchemy engine and make sure both tables exist.

    One engine is built at process start and handed to both stores; the
    caller disposes it at shutdown.
    """
    connect_args: dict = {}
    engine_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout_seconds
    else:
        engine_args["pool_timeout"] = timeout_seconds
        engine_args["pool_pre_ping"] = True
        if db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, int(timeout_seconds))
    engine = create_engine(db_url, connect_args=connect_args, **engine_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    with _translate_errors("create_schema"):
        _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Turn driver timeouts and connection failures into StoreUnavailableError.

    The full driver error is logged here; the raised error carries only a
    generic message. IntegrityError is left alone -- callers map it.
    """
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        logger.error("Store operation %s failed", operation, exc_info=True)
        raise StoreUnavailableError() from exc


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for activated User accounts.

    Usage:
        engine = create_store_engine("sqlite:///auth.db")
        users = UserStore(engine)
        user_id = users.create_user(User(email="a@x.com", name="A", hashed_password=h, role="student"))
        users.get_by_email("a@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (OperationalError, PoolTimeoutError):
            logger.error("Database ping failed", exc_info=True)
            return False
        return True

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises ConflictError if the email is already taken. This is the
        uniqueness backstop the onboarding flow relies on.
        """
        user_id = user.id or uuid.uuid4().hex
        with _translate_errors("create_user"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _users.insert().values(
                            id=user_id,
                            email=user.email,
                            name=user.name,
                            phone_number=user.phone_number,
                            hashed_password=user.hashed_password,
                            role=user.role,
                            refresh_token=user.refresh_token,
                            created_at=_to_iso(_now()),
                        )
                    )
            except IntegrityError as exc:
                raise ConflictError("User with given email already exists") from exc
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with _translate_errors("get_by_email"), self.engine.connect() as conn:
            row = conn.execute(select(_users).where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with _translate_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(select(_users).where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists(self, email: str) -> bool:
        with _translate_errors("exists"), self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email)).fetchone()
        return row is not None

    def set_refresh_token(self, user_id: str, token: str | None) -> bool:
        """Overwrite the stored refresh token unconditionally. None clears it.

        Returns True if a row was updated, False if user_id was not found.
        """
        with _translate_errors("set_refresh_token"), self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(refresh_token=token))
        return result.rowcount > 0

    def clear_refresh_token(self, user_id: str) -> bool:
        return self.set_refresh_token(user_id, None)

    def swap_refresh_token(self, user_id: str, expected: str, new: str) -> bool:
        """Atomically replace `expected` with `new`. Compare-and-set in one UPDATE.

        Returns False when the stored token is no longer `expected` -- it was
        rotated or cleared by someone else -- and nothing is written.
        """
        with _translate_errors("swap_refresh_token"), self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.refresh_token == expected))
                .values(refresh_token=new)
            )
        return result.rowcount == 1

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with _translate_errors("update_last_login"), self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_to_iso(_now())))


# ---------------------------------------------------------------------------
# Pending registrations
# ---------------------------------------------------------------------------


class OnboardingStore:
    """Repository for PendingRegistration records, keyed by email."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def replace(self, pending: PendingRegistration) -> None:
        """Delete any record for this email and insert the new one, in one transaction.

        This is the supersede step: after it commits, only the new code can
        verify. A concurrent replace for the same email that loses the race
        on UNIQUE(email) is reported as a conflict.
        """
        with _translate_errors("replace_pending"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(_pending.delete().where(_pending.c.email == pending.email))
                    conn.execute(
                        _pending.insert().values(
                            email=pending.email,
                            name=pending.name,
                            phone_number=pending.phone_number,
                            hashed_password=pending.hashed_password,
                            code=pending.code,
                            expires_at=_to_iso(pending.expires_at),
                            created_at=_to_iso(_now()),
                        )
                    )
            except IntegrityError as exc:
                raise ConflictError("A registration for this email is already in progress") from exc

    def get(self, email: str) -> PendingRegistration | None:
        with _translate_errors("get_pending"), self.engine.connect() as conn:
            row = conn.execute(select(_pending).where(_pending.c.email == email)).fetchone()
        return _row_to_pending(row) if row is not None else None

    def find(self, email: str, code: str) -> PendingRegistration | None:
        """Exact (email, code) match. Codes are not unique across emails, so both are required."""
        with _translate_errors("find_pending"), self.engine.connect() as conn:
            row = conn.execute(
                select(_pending).where((_pending.c.email == email) & (_pending.c.code == code))
            ).fetchone()
        return _row_to_pending(row) if row is not None else None

    def update_code(self, email: str, code: str, expires_at: datetime) -> bool:
        """Swap in a fresh code and expiry, leaving the rest of the record untouched."""
        with _translate_errors("update_code"), self.engine.begin() as conn:
            result = conn.execute(
                _pending.update().where(_pending.c.email == email).values(code=code, expires_at=_to_iso(expires_at))
            )
        return result.rowcount > 0

    def delete(self, email: str, code: str | None = None) -> bool:
        """Delete the record for email. With code, only if it still carries that code.

        Verification passes the code so it never deletes a newer registration
        that superseded the one being verified. Idempotent.
        """
        condition = _pending.c.email == email
        if code is not None:
            condition = condition & (_pending.c.code == code)
        with _translate_errors("delete_pending"), self.engine.begin() as conn:
            result = conn.execute(_pending.delete().where(condition))
        return result.rowcount > 0

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete every record whose code expired before now. Returns rows removed."""
        cutoff = _to_iso(now or _now())
        with _translate_errors("purge_expired"), self.engine.begin() as conn:
            result = conn.execute(_pending.delete().where(_pending.c.expires_at < cutoff))
        return result.rowcount

    def count(self, email: str | None = None) -> int:
        """Number of pending records, optionally for one email."""
        query = select(func.count()).select_from(_pending)
        if email is not None:
            query = query.where(_pending.c.email == email)
        with _translate_errors("count_pending"), self.engine.connect() as conn:
            return conn.execute(query).scalar_one()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        phone_number=row.phone_number,
        hashed_password=row.hashed_password,
        role=row.role,
        refresh_token=row.refresh_token,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_pending(row) -> PendingRegistration:
    return PendingRegistration(
        email=row.email,
        name=row.name,
        phone_number=row.phone_number,
        hashed_password=row.hashed_password,
        code=row.code,
        expires_at=_from_iso(row.expires_at),
        created_at=row.created_at,
    )
