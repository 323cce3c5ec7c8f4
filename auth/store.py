"""
auth/store.py -- SQLAlchemy Core persistence layer for users and refresh tokens.

Pattern: Repository + Data Mapper. UserStore and RefreshTokenStore are the
repositories; _row_to_user / _row_to_refresh_token are the mappers. The
service never touches SQL directly.

Both stores share one Engine built by create_store_engine(), so they see the
same connection pool and the same transaction settings.

Security:
  All queries use bound parameters. No f-strings in SQL.

Transactions:
  RefreshTokenStore.replace() is the only multi-statement unit. It deletes
  the presented token and inserts its successor inside engine.begin(); if the
  DELETE matched nothing (another request already rotated it) the insert is
  skipped and the caller is told so.

  SQLite: pysqlite's implicit BEGIN is disabled. Write transactions
  (engine.begin()) start with BEGIN IMMEDIATE, so the write lock is taken
  before the DELETE reads anything; two concurrent rotations of one token
  therefore serialize and the second sees rowcount 0. Lookups go through
  _reader() and use a deferred BEGIN, so they never wait on the write lock.
  Under Postgres READ COMMITTED the second DELETE blocks on the row lock and
  also sees rowcount 0 after the first commits.

Timestamps are stored as fixed-width UTC ISO 8601 strings, which sort
lexicographically in time order (purge_expired relies on this).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Connection, Engine

from auth.models import RefreshTokenRecord, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(30), nullable=False, unique=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("password_hash", Text),  # NULL for accounts without a local password
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token", String(512), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _sqlite_on_connect(dbapi_conn, connection_record) -> None:
    """Per-connection SQLite setup.

    isolation_level=None hands transaction control to the "begin" listener.
    WAL lets readers proceed during writes; foreign_keys enables ON DELETE
    CASCADE. PRAGMAs are per connection, so this runs for every new one.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# Execution option marking a connection that only reads.
_READ_ONLY = "authsvc_read_only"


def _sqlite_on_begin(conn) -> None:
    """Writers take the write lock up front; readers stay deferred and run on the WAL snapshot."""
    if conn.get_execution_options().get(_READ_ONLY):
        conn.exec_driver_sql("BEGIN")
    else:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_store_engine(db_url: str) -> Engine:
    """Build the shared Engine and create tables if they do not exist."""
    connect_args: dict = {}
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        # timeout = busy wait (seconds) while another connection holds the write lock
        connect_args = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(db_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(engine, "connect", _sqlite_on_connect)
        event.listen(engine, "begin", _sqlite_on_begin)
    _metadata.create_all(engine)
    return engine


def _reader(engine: Engine) -> Connection:
    return engine.connect().execution_options(**{_READ_ONLY: True})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        engine = create_store_engine("sqlite:///auth.db")
        users = UserStore(engine)
        user = users.create_user(User(email="a@example.com", username="alice", first_name="A", last_name="B"))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_users_by_email_or_username(self, email: str, username: str) -> list[User]:
        """Return every user whose email OR username matches (0, 1 or 2 rows)."""
        with _reader(self.engine) as conn:
            rows = conn.execute(
                _users.select().where(or_(_users.c.email == email, _users.c.username == username))
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if email or username is taken.
        The service catches that as a signal that a concurrent signup won.
        """
        now = _now()
        user_id = user.id or str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    username=user.username,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    password_hash=user.password_hash,
                    email_verified=1 if user.email_verified else 0,
                    is_active=1 if user.is_active else 0,
                    created_at=_to_iso(now),
                    updated_at=_to_iso(now),
                )
            )
        user.id = user_id
        user.created_at = now
        user.updated_at = now
        return user

    def find_user_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with _reader(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with _reader(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user_last_login(self, user_id: str, when: datetime | None = None) -> datetime:
        """Stamp last_login (and updated_at) for the given user and return the timestamp used."""
        stamp = when or _now()
        with self.engine.begin() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(last_login=_to_iso(stamp), updated_at=_to_iso(stamp))
            )
        return stamp

    def set_user_active(self, user_id: str, active: bool) -> bool:
        """Activate or deactivate an account. Returns False if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(is_active=1 if active else 0, updated_at=_to_iso(_now()))
            )
        return result.rowcount > 0


class RefreshTokenStore:
    """Repository for persisted refresh tokens.

    Token values are unique 256+ bit random JWTs. A duplicate insert is a bug,
    not a branch: create() lets the IntegrityError propagate.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, record: RefreshTokenRecord) -> None:
        with self.engine.begin() as conn:
            conn.execute(_refresh_tokens.insert().values(**_refresh_token_values(record)))

    def find_by_value(self, token: str) -> RefreshTokenRecord | None:
        with _reader(self.engine) as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def replace(self, old_token: str, new_record: RefreshTokenRecord) -> bool:
        """Atomically delete old_token and insert new_record.

        Returns False without inserting anything if old_token no longer exists
        -- the caller lost a race against a concurrent rotation or logout.
        Any exception rolls back both statements.
        """
        with self.engine.begin() as conn:
            deleted = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == old_token)).rowcount
            if deleted == 0:
                return False
            conn.execute(_refresh_tokens.insert().values(**_refresh_token_values(new_record)))
        return True

    def delete_by_value(self, token: str) -> bool:
        """Delete one token. Returns False if it did not exist."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: str) -> int:
        """Revoke every session of a user. Returns the number of tokens removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
        return result.rowcount

    def purge_expired(self, now: datetime | None = None) -> int:
        """Remove tokens whose expiry has passed. Returns the number removed."""
        cutoff = _to_iso(now or _now())
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < cutoff))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        password_hash=row.password_hash,
        email_verified=bool(row.email_verified),
        is_active=bool(row.is_active),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
        last_login=_from_iso(row.last_login),
    )


def _row_to_refresh_token(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token=row.token,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        created_at=_from_iso(row.created_at),
    )


def _refresh_token_values(record: RefreshTokenRecord) -> dict:
    return {
        "token": record.token,
        "user_id": record.user_id,
        "expires_at": _to_iso(record.expires_at),
        "created_at": _to_iso(record.created_at or _now()),
    }
