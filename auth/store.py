"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and TokenStore are the repositories; _row_to_user / _row_to_token
are the mappers. Route and middleware code never touches SQL directly.

TokenStore implements the TokenPersistence contract (auth/persistence.py), so
an instance can be passed straight to AuthOptions(persistence=...).

Security:
  All queries use bound parameters. No f-strings in SQL.

  Remember-me tokens are stored as HMAC-SHA256(secret_key, token). A leaked
  database does not yield usable cookies without the key as well.

Both stores share one schema, so they can point at the same database URL.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import CookieOptions, RememberToken, User
from auth.tokens import hash_token

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)

_remember_tokens = Table(
    "remember_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# User repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///users.db")
        uid = store.create_user(User(username="joe", name="Joe Bloggs"))
        user = await store.find_user_by_id(str(uid))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    name=user.name,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user and their remember-me tokens.

        Sessions still holding this user's id are not touched here; the next
        request on such a session purges the stale id during resolution.
        Returns True if deleted, False if not found.
        """
        with self.engine.connect() as conn:
            conn.execute(_remember_tokens.delete().where(_remember_tokens.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    async def find_user_by_id(self, user_id: str) -> User | None:
        """AuthOptions.find_user_by_id adapter.

        Session and cookie ids arrive as strings. Anything that is not an
        ASCII decimal integer cannot be a primary key, so it resolves to None
        instead of raising.
        """
        if not (user_id.isascii() and user_id.isdigit()):
            return None
        return self.get_by_id(int(user_id))

    def close(self) -> None:
        self.engine.dispose()


def user_id_of(user: User) -> int:
    """AuthOptions.get_user_id adapter for User records."""
    return user.id


# ---------------------------------------------------------------------------
# Remember-me token repository
# ---------------------------------------------------------------------------


class TokenStore:
    """TokenPersistence backed by the remember_tokens table.

    Usage:
        tokens = TokenStore(db_url, secret_key=settings.secret_key)
        options = AuthOptions(..., persistence=tokens)
    """

    def __init__(
        self,
        db_url: str,
        secret_key: str,
        get_user_id: Callable[[Any], int] = user_id_of,
        cookie: CookieOptions | None = None,
    ) -> None:
        self.engine: Engine = _make_engine(db_url)
        self._secret_key = secret_key
        self._get_user_id = get_user_id
        # Picked up by AuthOptions when it is not given a cookie descriptor itself.
        self.cookie = cookie

    async def save_token(self, principal: Any, token: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _remember_tokens.insert().values(
                    user_id=self._get_user_id(principal),
                    token_hash=hash_token(self._secret_key, token),
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    async def has_token(self, principal: Any, token: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                _remember_tokens.select().where(
                    (_remember_tokens.c.user_id == self._get_user_id(principal))
                    & (_remember_tokens.c.token_hash == hash_token(self._secret_key, token))
                )
            ).fetchone()
        return row is not None

    async def drop_token(self, principal: Any, token: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _remember_tokens.delete().where(
                    (_remember_tokens.c.user_id == self._get_user_id(principal))
                    & (_remember_tokens.c.token_hash == hash_token(self._secret_key, token))
                )
            )
            conn.commit()

    async def clear_tokens(self, principal: Any) -> None:
        with self.engine.connect() as conn:
            conn.execute(_remember_tokens.delete().where(_remember_tokens.c.user_id == self._get_user_id(principal)))
            conn.commit()

    def list_tokens(self, principal: Any) -> list[RememberToken]:
        """Return the principal's stored tokens (hashes only), newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _remember_tokens.select()
                .where(_remember_tokens.c.user_id == self._get_user_id(principal))
                .order_by(_remember_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def count_tokens(self, principal: Any) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_remember_tokens)
                .where(_remember_tokens.c.user_id == self._get_user_id(principal))
            ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        name=row.name,
        created_at=row.created_at,
    )


def _row_to_token(row) -> RememberToken:
    return RememberToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        created_at=row.created_at,
    )
