"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is enforced by the database, not by a read-then-insert check.
  Two concurrent registrations for the same address both reach INSERT and the
  loser gets sqlalchemy.exc.IntegrityError, which the service translates.

Token pair invariant:
  (email_verification_token_hash, email_verification_token_expiry) and
  (password_reset_token_hash, password_reset_token_expiry) are written as
  pairs. update_user() rejects a call that names only one half of a pair, so
  there is no way to leave an expiry without its hash or the reverse.

DB URL: Settings.database_url (SQLite file by default, any SQLAlchemy URL works).

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("email_verification_token_hash", Text),
    Column("email_verification_token_expiry", String(40)),  # ISO 8601 UTC
    Column("password_reset_token_hash", Text),
    Column("password_reset_token_expiry", String(40)),  # ISO 8601 UTC
    Column("first_name", String(255)),
    Column("last_name", String(255)),
    Column("company", String(255)),
    Column("position", String(255)),
    Column("location", String(255)),
    Column("created_at", String(32), nullable=False),
)

_TOKEN_PAIRS: tuple[tuple[str, str], ...] = (
    ("email_verification_token_hash", "email_verification_token_expiry"),
    ("password_reset_token_hash", "password_reset_token_expiry"),
)

# email and id are immutable; everything else may be updated.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "hashed_password",
        "email_verified",
        "email_verification_token_hash",
        "email_verification_token_expiry",
        "password_reset_token_hash",
        "password_reset_token_expiry",
        "first_name",
        "last_name",
        "company",
        "position",
        "location",
    }
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///proconnect.db")
        user_id = store.create_user(User(email="a@example.com", hashed_password=hash_password("secret")))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The caller decides what that means; the store never overwrites.
        """
        _check_token_pairs(
            {
                "email_verification_token_hash": user.email_verification_token_hash,
                "email_verification_token_expiry": user.email_verification_token_expiry,
                "password_reset_token_hash": user.password_reset_token_hash,
                "password_reset_token_expiry": user.password_reset_token_expiry,
            }
        )
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    hashed_password=user.hashed_password,
                    email_verified=1 if user.email_verified else 0,
                    email_verification_token_hash=user.email_verification_token_hash,
                    email_verification_token_expiry=user.email_verification_token_expiry,
                    password_reset_token_hash=user.password_reset_token_hash,
                    password_reset_token_expiry=user.password_reset_token_expiry,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    company=user.company,
                    position=user.position,
                    location=user.location,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: see _UPDATABLE_FIELDS. email_verified must be passed
        as bool; this method converts to int for storage. Token hash/expiry
        columns must be passed in pairs.

        Returns True if a row was updated, False if user_id was not found.
        Raises ValueError for unknown fields or a half-written token pair.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        _check_token_pairs(fields, partial=True)
        if "email_verified" in fields:
            fields["email_verified"] = 1 if fields["email_verified"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_token_pairs(fields: dict, partial: bool = False) -> None:
    """Raise ValueError if a token hash and its expiry would disagree.

    partial=True (updates): a pair may be absent entirely, but if either half
    is named, both must be, and both must be set or both None.
    """
    for hash_col, expiry_col in _TOKEN_PAIRS:
        if partial and hash_col not in fields and expiry_col not in fields:
            continue
        if partial and (hash_col in fields) != (expiry_col in fields):
            raise ValueError(f"{hash_col} and {expiry_col} must be updated together")
        if (fields.get(hash_col) is None) != (fields.get(expiry_col) is None):
            raise ValueError(f"{hash_col} and {expiry_col} must both be set or both be empty")


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        email_verified=bool(row.email_verified),
        email_verification_token_hash=row.email_verification_token_hash,
        email_verification_token_expiry=row.email_verification_token_expiry,
        password_reset_token_hash=row.password_reset_token_hash,
        password_reset_token_expiry=row.password_reset_token_expiry,
        first_name=row.first_name,
        last_name=row.last_name,
        company=row.company,
        position=row.position,
        location=row.location,
        created_at=row.created_at,
    )
