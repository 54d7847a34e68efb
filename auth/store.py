"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as projects/store.py).
UserStore and SessionStore are the repositories; _row_to_user /
_row_to_session are the mappers. Service and route code never touches SQL
directly.

Both stores share one MetaData, so pointing them at the same database URL
gives SessionStore.resolve() the users table to join against.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Session validity is decided in SQL (expires_at > now) on every lookup.
  A row that has expired but not yet been swept by cleanup_expired() is
  therefore already invisible to resolve() -- cleanup timing never widens the
  validity window.

Timestamps:
  Stored as ISO 8601 UTC strings with fixed microsecond precision, so that
  lexicographic comparison in SQL matches chronological order.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.models import STATUS_APPROVED, STATUS_PENDING, Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("status", String(16), nullable=False, server_default=STATUS_PENDING),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("user_id", Integer, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_sessions_user_id", "user_id"),
    Index("ix_sessions_expires_at", "expires_at"),
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


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(settings.database_url)
        uid = store.create_user(User(email="a@example.com", name="A", password_hash=hash_password("...")))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AuthService.register() checks first and also catches IntegrityError,
        which covers two concurrent registrations of the same address.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    password_hash=user.password_hash,
                    status=user.status,
                    is_admin=1 if user.is_admin else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_by_status(self, status: str) -> list[User]:
        """Return users in the given status, oldest registration first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().where(_users.c.status == status).order_by(_users.c.created_at, _users.c.id)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def set_status(self, user_id: int, status: str) -> bool:
        """Update a user's status. Returns False if user_id was not found."""
        if status not in (STATUS_PENDING, STATUS_APPROVED):
            raise ValueError(f"Unknown user status: {status!r}")
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(status=status))
            conn.commit()
        return result.rowcount > 0

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(is_admin=1 if is_admin else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session records -- the revocation source of truth.

    Usage:
        sessions = SessionStore(settings.database_url)
        sessions.create(user.id, token, ttl=3600)
        user = sessions.resolve(token)  # None once deleted or expired
        sessions.delete(token)
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def create(self, user_id: int, token: str, ttl: int) -> Session:
        """Persist (token, user_id, expires_at = now + ttl) and return the record.

        Raises sqlalchemy.exc.IntegrityError if the token is already stored.
        TokenService embeds a random jti, so this does not happen in practice.
        """
        now = datetime.now(timezone.utc)
        expires_at = _iso(now + timedelta(seconds=ttl))
        created_at = _iso(now)
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    token=token,
                    user_id=user_id,
                    expires_at=expires_at,
                    created_at=created_at,
                )
            )
            conn.commit()
        return Session(
            id=result.inserted_primary_key[0],
            token=token,
            user_id=user_id,
            expires_at=expires_at,
            created_at=created_at,
        )

    def get(self, token: str) -> Session | None:
        """Return the raw session row regardless of expiry. Diagnostic use only."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def resolve(self, token: str) -> User | None:
        """Return the owning user iff a session row exists AND expires_at > now.

        This is the authoritative authentication check. The caller must have
        verified the token signature first.
        """
        stmt = (
            select(_users)
            .select_from(_sessions.join(_users, _sessions.c.user_id == _users.c.id))
            .where((_sessions.c.token == token) & (_sessions.c.expires_at > _now_iso()))
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_user(row) if row is not None else None

    def delete(self, token: str) -> bool:
        """Delete a session. Idempotent: a missing token is not an error.

        Returns True if a row was removed.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token == token))
            conn.commit()
        return result.rowcount > 0

    def delete_for_user(self, user_id: int) -> int:
        """Revoke every session a user holds. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        """Count live (unexpired) sessions for a user."""
        with self.engine.connect() as conn:
            result = conn.execute(
                text("SELECT COUNT(*) FROM sessions WHERE user_id = :uid AND expires_at > :now"),
                {"uid": user_id, "now": _now_iso()},
            ).scalar()
        return result or 0

    def cleanup_expired(self) -> int:
        """Bulk-delete every session with expires_at < now. Returns rows removed.

        Idempotent and order-independent; safe to run alongside login/logout.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < _now_iso()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        status=row.status,
        is_admin=bool(row.is_admin),
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
