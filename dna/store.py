"""
dna/store.py -- Persistence for per-user DNA sequences.

Pattern: Repository (same shape as auth/store.py). One row per user; a
second insert for the same user is refused rather than overwriting, and
select for an unknown user is an error. Both surface as SequenceStoreError.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import threading

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from dna.service import SequenceStoreError

DEFAULT_DB_URL = "sqlite:///dna.db"

_metadata = MetaData()

_sequences = Table(
    "sequences",
    _metadata,
    Column("username", String(255), primary_key=True),
    Column("sequence", Text, nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class SQLSequenceStore:
    """SQLAlchemy Core SequenceRepository."""

    def __init__(self, db_url: str = DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if db_url.endswith(":memory:") or db_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def insert(self, username: str, sequence: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(_sequences.insert().values(username=username, sequence=sequence))
        except IntegrityError as exc:
            raise SequenceStoreError("user already exists") from exc
        except SQLAlchemyError as exc:
            raise SequenceStoreError(str(exc)) from exc

    def select(self, username: str) -> str:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(_sequences.c.sequence).where(_sequences.c.username == username)).fetchone()
        except SQLAlchemyError as exc:
            raise SequenceStoreError(str(exc)) from exc
        if row is None:
            raise SequenceStoreError("invalid user")
        return row.sequence

    def close(self) -> None:
        self.engine.dispose()


class MemorySequenceStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sequences: dict[str, str] = {}

    def insert(self, username: str, sequence: str) -> None:
        with self._lock:
            if username in self._sequences:
                raise SequenceStoreError("user already exists")
            self._sequences[username] = sequence

    def select(self, username: str) -> str:
        with self._lock:
            try:
                return self._sequences[username]
            except KeyError:
                raise SequenceStoreError("invalid user") from None

    def close(self) -> None:
        pass
