"""
auth/store.py -- SQLAlchemy Core persistence layer for user identities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. The session service,
the identity resolver and the routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Unique constraints on username, email and (provider, provider_id) are the
  race-safety backstop for every check-then-write in the session service.
  NULL provider_id values are distinct under SQL UNIQUE semantics, so any
  number of LOCAL users without a provider id can coexist.

  Emails are stored and looked up lower-cased, so uniqueness and OAuth
  linking by email are case-insensitive.

  swap_refresh_token_hash() is a compare-and-swap: the UPDATE only matches
  when the stored hash is still the one the caller verified. Two concurrent
  refreshes presenting the same token cannot both rotate.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import AuthProvider, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("username", String(255), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("name", String(100)),
    Column("image", Text),
    Column("password_hash", Text),  # NULL for OAuth-only users
    Column("hashed_refresh_token", Text),  # NULL = logged out
    Column("provider", String(30), nullable=False, server_default=AuthProvider.LOCAL.value),
    Column("provider_id", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("provider", "provider_id", name="uq_users_provider_identity"),
)

# Fields update_user() accepts. username is immutable once set.
_MUTABLE_FIELDS = frozenset(
    {"email", "name", "image", "password_hash", "hashed_refresh_token", "provider", "provider_id"}
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        store.create_user(User(username="neo", email="neo@matrix.io"))
        user = store.get_by_username("neo")
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

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_users).where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users).where(_users.c.email == _normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_provider(self, provider: AuthProvider, provider_id: str) -> User | None:
        """Look up a user by (provider, provider_id). Returns None if no linked record exists."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users).where(
                    (_users.c.provider == AuthProvider(provider).value) & (_users.c.provider_id == provider_id)
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_username_or_email(self, username: str, email: str) -> list[User]:
        """Return every user whose username OR email matches (at most two rows)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_users).where(or_(_users.c.username == username, _users.c.email == _normalize_email(email)))
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def username_exists(self, username: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(_users.c.username).where(_users.c.username == username)).first()
        return found is not None

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(_users).order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Run SELECT 1. Raises on a broken connection; used by GET /ready."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Insert a new user and return the stored record.

        Raises sqlalchemy.exc.IntegrityError if the username, email or
        (provider, provider_id) pair is already taken. Callers treat that as a
        lost race against a concurrent request.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=_normalize_email(user.email),
                    name=user.name,
                    image=user.image,
                    password_hash=user.password_hash,
                    hashed_refresh_token=user.hashed_refresh_token,
                    provider=AuthProvider(user.provider).value,
                    provider_id=user.provider_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_by_username(user.username)

    def update_user(self, username: str, /, **fields) -> User | None:
        """Update mutable fields and return the fresh record, or None if not found.

        Unknown or immutable field names raise ValueError -- fail fast rather
        than silently dropping a write.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)!r}")
        if "provider" in fields:
            fields["provider"] = AuthProvider(fields["provider"]).value
        if "email" in fields:
            fields["email"] = _normalize_email(fields["email"])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.username == username).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_username(username)

    def set_refresh_token_hash(self, username: str, hashed: str | None) -> bool:
        """Unconditionally store (or clear, with None) the refresh token hash."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.username == username)
                .values(hashed_refresh_token=hashed, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def swap_refresh_token_hash(self, username: str, expected: str, new: str) -> bool:
        """Replace the refresh hash only if it still equals `expected`.

        Returns False when another writer rotated (or cleared) it first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.username == username) & (_users.c.hashed_refresh_token == expected))
                .values(hashed_refresh_token=new, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, username: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.username == username))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        username=row.username,
        email=row.email,
        name=row.name,
        image=row.image,
        password_hash=row.password_hash,
        hashed_refresh_token=row.hashed_refresh_token,
        provider=AuthProvider(row.provider),
        provider_id=row.provider_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
