"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user is the mapper. The engine and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  save() writes the whole record in one UPDATE statement. Two requests racing
  on the same user therefore resolve as last-write-wins; neither can leave a
  half-written record (e.g. a code hash without its issued-at timestamp).

Timestamps:
  Code issued-at values are stored as ISO 8601 UTC strings and mapped back to
  timezone-aware datetimes, so expiry arithmetic in auth/codes.py never mixes
  naive and aware values.

Layer rule: no imports from api/ or categories/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import User

_DEFAULT_DB_URL = "sqlite:///codegate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("verified", Boolean, nullable=False, server_default="0"),
    Column("verification_code_hash", String(64)),  # HMAC-SHA256 hex
    Column("verification_code_issued_at", String(32)),
    Column("forgot_password_code_hash", String(64)),
    Column("forgot_password_code_issued_at", String(32)),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Naive values are treated as UTC.
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.create_user(User(name="Alice", email="a@example.com", hashed_password=...))
        user = store.find_by_email("a@example.com")
        user.verified = True
        store.save(user)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The engine treats that as a registration conflict, which also covers
        two concurrent registrations for the same address.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    created_at=now,
                    updated_at=now,
                    **_user_to_values(user),
                )
            )
            conn.commit()
        return user_id

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def save(self, user: User) -> bool:
        """Write every mutable field of an existing user in one statement.

        Returns True if a row was updated, False if user.id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user.id)
                .values(updated_at=_now_iso(), **_user_to_values(user))
            )
            conn.commit()
        return result.rowcount > 0

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_to_values(user: User) -> dict:
    return {
        "name": user.name,
        "email": user.email,
        "hashed_password": user.hashed_password,
        "verified": user.verified,
        "verification_code_hash": user.verification_code_hash,
        "verification_code_issued_at": _to_iso(user.verification_code_issued_at),
        "forgot_password_code_hash": user.forgot_password_code_hash,
        "forgot_password_code_issued_at": _to_iso(user.forgot_password_code_issued_at),
        "token_version": user.token_version,
    }


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        verified=bool(row.verified),
        verification_code_hash=row.verification_code_hash,
        verification_code_issued_at=_from_iso(row.verification_code_issued_at),
        forgot_password_code_hash=row.forgot_password_code_hash,
        forgot_password_code_issued_at=_from_iso(row.forgot_password_code_issued_at),
        token_version=row.token_version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
