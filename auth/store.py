"""
auth/store.py -- Credential Store: persistence for credentials and sessions.

Pattern: Repository. The Repository protocol is the contract the Session
Manager depends on; SQLCredentialStore (SQLAlchemy Core, durable) and
MemoryCredentialStore (dicts + lock, tests and throwaway runs) implement it.
Nothing outside this module touches the credentials or sessions tables.

Atomicity:
  Credentials are immutable once created, so reading one never races with a
  writer. Every mutation of the sessions table is a single statement:
    - login  -> INSERT ... ON CONFLICT(username) DO UPDATE (upsert)
    - logout -> DELETE ... WHERE username = :u AND token = :t
  Concurrent logins for one user therefore leave exactly one row holding
  the token whose write landed last, and a logout only succeeds for the
  token that is current at the moment the DELETE runs. Dialects without
  native upsert fall back to delete + insert inside one transaction.

Errors:
  IntegrityError on credential insert -> AlreadyExists.
  Any other SQLAlchemyError            -> StoreUnavailable (chained).
  Missing user / wrong password / wrong token -> BadAuth, all alike.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, dna/, or core/.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from auth.errors import AlreadyExists, BadAuth, StoreUnavailable
from auth.models import Credential, Session
from auth.tokens import PasswordVerifier, TokenGenerator, generate_token, plaintext_verifier, tokens_match

DEFAULT_DB_URL = "sqlite:///auth.db"

# Compared against when the username is unknown so a slow verifier costs the
# same on both failure paths.
_DUMMY_PASSWORD = "sessions_timing_dummy"


class Repository(Protocol):
    """The four operations the Session Manager needs from a credential store."""

    def create(self, username: str, password: str) -> None: ...

    def authenticate(self, username: str, password: str) -> str: ...

    def invalidate(self, username: str, token: str) -> None: ...

    def check(self, username: str, token: str) -> None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_credentials = Table(
    "credentials",
    _metadata,
    Column("username", String(255), primary_key=True),
    Column("password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("username", String(255), primary_key=True),
    Column("token", String(64), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and a busy timeout on every new connection.

    WAL lets the validate read path proceed while a login is writing. The
    busy timeout makes concurrent writers queue on the database lock instead
    of failing immediately with "database is locked".
    """
    dbapi_conn.execute("PRAGMA busy_timeout=5000")
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_sqlite_memory(db_url: str) -> bool:
    return db_url.startswith("sqlite") and (db_url.endswith(":memory:") or db_url in ("sqlite://", "sqlite:///"))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# SQL backend
# ---------------------------------------------------------------------------


class SQLCredentialStore:
    """Durable Repository on SQLAlchemy Core.

    Usage:
        store = SQLCredentialStore("sqlite:///auth.db")
        store.create("bob", "x")
        token = store.authenticate("bob", "x")
        store.check("bob", token)
        store.close()

    A plain sqlite :memory: URL is served through a single shared connection
    (StaticPool) so worker threads see one database rather than one each.
    """

    def __init__(
        self,
        db_url: str = DEFAULT_DB_URL,
        verifier: PasswordVerifier = plaintext_verifier,
        token_generator: TokenGenerator = generate_token,
    ) -> None:
        self._verify = verifier
        self._generate = token_generator
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if _is_sqlite_memory(db_url):
                engine_kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        try:
            _metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"cannot initialise auth schema: {exc}") from exc

    # ------------------------------------------------------------------
    # Repository operations
    # ------------------------------------------------------------------

    def create(self, username: str, password: str) -> None:
        """Insert a new credential. Raises AlreadyExists if the username is taken.

        The primary key on username makes the check-and-insert one atomic
        statement; two concurrent signups for one name cannot both succeed.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(_credentials.insert().values(username=username, password=password, created_at=_now_iso()))
        except IntegrityError as exc:
            raise AlreadyExists() from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc

    def authenticate(self, username: str, password: str) -> str:
        """Verify the password, issue a fresh token, and replace any prior session.

        Raises BadAuth when the user is unknown or the password is wrong.
        A prior session for the user is silently invalidated.
        """
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    select(_credentials.c.password).where(_credentials.c.username == username)
                ).fetchone()
                if row is None:
                    self._verify(password, _DUMMY_PASSWORD)
                    raise BadAuth()
                if not self._verify(password, row.password):
                    raise BadAuth()
                token = self._generate()
                self._replace_session(conn, username, token)
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc
        return token

    def invalidate(self, username: str, token: str) -> None:
        """Delete the session row if (username, token) is the current session.

        The token is matched with SQL equality, not in constant time;
        compare_digest applies to MemoryCredentialStore only.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _sessions.delete().where((_sessions.c.username == username) & (_sessions.c.token == token))
                )
                deleted = result.rowcount
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc
        if deleted != 1:
            raise BadAuth()

    def check(self, username: str, token: str) -> None:
        """Raise BadAuth unless (username, token) is the current session. Read-only.

        Same SQL equality match as invalidate().
        """
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(_sessions.c.username).where(
                        (_sessions.c.username == username) & (_sessions.c.token == token)
                    )
                ).fetchone()
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc
        if row is None:
            raise BadAuth()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _replace_session(self, conn: Connection, username: str, token: str) -> None:
        now = _now_iso()
        insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if insert is None:
            conn.execute(_sessions.delete().where(_sessions.c.username == username))
            conn.execute(_sessions.insert().values(username=username, token=token, created_at=now))
            return
        stmt = insert(_sessions).values(username=username, token=token, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_sessions.c.username],
            set_={"token": stmt.excluded.token, "created_at": stmt.excluded.created_at},
        )
        conn.execute(stmt)


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class MemoryCredentialStore:
    """Repository backed by two dicts under one lock.

    The lock covers every read-modify-write, which gives the same per-user
    atomicity as the SQL backend. State is lost when the process exits.
    """

    def __init__(
        self,
        verifier: PasswordVerifier = plaintext_verifier,
        token_generator: TokenGenerator = generate_token,
    ) -> None:
        self._verify = verifier
        self._generate = token_generator
        self._lock = threading.Lock()
        self._credentials: dict[str, Credential] = {}
        self._sessions: dict[str, Session] = {}

    def create(self, username: str, password: str) -> None:
        with self._lock:
            if username in self._credentials:
                raise AlreadyExists()
            self._credentials[username] = Credential(username, password, _now_iso())

    def authenticate(self, username: str, password: str) -> str:
        with self._lock:
            stored = self._credentials.get(username)
            if stored is None:
                self._verify(password, _DUMMY_PASSWORD)
                raise BadAuth()
            if not self._verify(password, stored.password):
                raise BadAuth()
            token = self._generate()
            self._sessions[username] = Session(username, token, _now_iso())
        return token

    def invalidate(self, username: str, token: str) -> None:
        with self._lock:
            current = self._sessions.get(username)
            if current is None or not tokens_match(token, current.token):
                raise BadAuth()
            del self._sessions[username]

    def check(self, username: str, token: str) -> None:
        with self._lock:
            current = self._sessions.get(username)
        if current is None or not tokens_match(token, current.token):
            raise BadAuth()

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass
