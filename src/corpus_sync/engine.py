"""Persistence engine contract and its SQLite implementation."""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

from corpus_sync.config import Settings
from corpus_sync.exceptions import (
    DuplicateRecordError,
    EngineUnavailableError,
    StorageCorruptionError,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

COLLECTIONS = frozenset({
    "words",
    "verbs",
    "sentences",
    "numbers",
    "users",
    "wordCategories",
    "rotationState",
})

_T = TypeVar("_T")


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection!r}")


class PersistenceEngine(abc.ABC):
    """Asynchronous id-keyed record store with named collections.

    Every coroutine runs in its own transaction; there are no
    cross-call transactions.
    """

    @abc.abstractmethod
    async def open(self) -> None:
        """Open the underlying store. Safe to call more than once."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the underlying store."""

    @abc.abstractmethod
    async def get_all(self, collection: str) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        ...

    @abc.abstractmethod
    async def add(self, collection: str, record: dict[str, Any]) -> None:
        """Insert a new record; raises DuplicateRecordError on id collision."""

    @abc.abstractmethod
    async def update(self, collection: str, record: dict[str, Any]) -> None:
        """Insert or replace the record with the same id."""

    @abc.abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        ...

    @abc.abstractmethod
    async def bulk_add(self, collection: str, records: Iterable[dict[str, Any]]) -> int:
        """Insert many records in one transaction; returns the count."""

    @abc.abstractmethod
    async def clear(self, collection: str) -> None:
        ...

    @abc.abstractmethod
    async def count(self, collection: str) -> int:
        ...


# ---------------------------------------------------------------------------
# DDL statements
# ---------------------------------------------------------------------------

_DDL = """
-- Meta table
CREATE TABLE IF NOT EXISTS meta (
    key TEXT NOT NULL,
    value TEXT,
    UNIQUE (key)
);

-- All collections share one id-keyed record table
CREATE TABLE IF NOT EXISTS records (
    rowid INTEGER PRIMARY KEY,
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    data TEXT NOT NULL,
    UNIQUE (collection, id)
);
CREATE INDEX IF NOT EXISTS record_collection_index ON records (collection);
"""


def connect(db_path: str | Path = ":memory:") -> sqlite3.Connection:
    """Open a database connection usable from the worker threads."""
    db_path_str = str(db_path)
    conn = sqlite3.connect(db_path_str, check_same_thread=False)
    if db_path_str != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize all tables if they don't exist. Set schema version."""
    conn.executescript(_DDL)
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) "
        "VALUES ('created_at', strftime('%Y-%m-%dT%H:%M:%f', 'now'))",
    )
    conn.commit()


def check_schema_version(conn: sqlite3.Connection) -> None:
    """Verify the database schema version is compatible."""
    try:
        row = conn.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        # meta table doesn't exist - uninitialized DB
        return
    if row is None:
        return
    version = row[0]
    if version != SCHEMA_VERSION:
        raise EngineUnavailableError(
            f"Incompatible schema version: {version} "
            f"(expected {SCHEMA_VERSION})"
        )


def _decode(collection: str, row: sqlite3.Row) -> dict[str, Any]:
    try:
        data = json.loads(row["data"])
    except (TypeError, ValueError) as e:
        raise StorageCorruptionError(
            f"Malformed record {row['id']!r} in {collection!r}: {e}"
        ) from e
    if not isinstance(data, dict):
        raise StorageCorruptionError(
            f"Record {row['id']!r} in {collection!r} is not a mapping"
        )
    return data


def _record_id(record: dict[str, Any]) -> str:
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise ValueError("Record must carry a non-empty string 'id'")
    return record_id


class SqliteEngine(PersistenceEngine):
    """PersistenceEngine backed by a single SQLite database.

    Blocking sqlite calls run in a worker thread; a lock keeps the
    shared connection to one transaction at a time.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> SqliteEngine:
        """Engine over the database named by ``settings.database_path``."""
        return cls(settings.database_path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        await asyncio.to_thread(self._open_sync)

    def _open_sync(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            try:
                conn = connect(self._db_path)
                check_schema_version(conn)
                init_db(conn)
            except sqlite3.Error as e:
                raise EngineUnavailableError(
                    f"Cannot open database {self._db_path!r}: {e}"
                ) from e
            self._conn = conn
            logger.info("Opened record store at %s", self._db_path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def _run(self, fn: Callable[[sqlite3.Connection], _T]) -> _T:
        await self.open()
        return await asyncio.to_thread(self._run_sync, fn)

    def _run_sync(self, fn: Callable[[sqlite3.Connection], _T]) -> _T:
        with self._lock:
            if self._conn is None:
                raise EngineUnavailableError("Database connection is closed")
            try:
                with self._conn:
                    return fn(self._conn)
            except sqlite3.Error as e:
                raise EngineUnavailableError(f"Transaction failed: {e}") from e

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get_all(self, collection: str) -> list[dict[str, Any]]:
        _check_collection(collection)

        def op(conn: sqlite3.Connection) -> list[dict[str, Any]]:
            rows = conn.execute(
                "SELECT id, data FROM records WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
            return [_decode(collection, r) for r in rows]

        return await self._run(op)

    async def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        _check_collection(collection)

        def op(conn: sqlite3.Connection) -> dict[str, Any] | None:
            row = conn.execute(
                "SELECT id, data FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
            return _decode(collection, row) if row else None

        return await self._run(op)

    async def add(self, collection: str, record: dict[str, Any]) -> None:
        _check_collection(collection)
        record_id = _record_id(record)
        payload = json.dumps(record)

        def op(conn: sqlite3.Connection) -> None:
            try:
                conn.execute(
                    "INSERT INTO records (collection, id, data) VALUES (?, ?, ?)",
                    (collection, record_id, payload),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError(
                    f"Record {record_id!r} already exists in {collection!r}"
                ) from e

        await self._run(op)

    async def update(self, collection: str, record: dict[str, Any]) -> None:
        _check_collection(collection)
        record_id = _record_id(record)
        payload = json.dumps(record)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO records (collection, id, data) VALUES (?, ?, ?) "
                "ON CONFLICT (collection, id) DO UPDATE SET data = excluded.data",
                (collection, record_id, payload),
            )

        await self._run(op)

    async def delete(self, collection: str, record_id: str) -> None:
        _check_collection(collection)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )

        await self._run(op)

    async def bulk_add(self, collection: str, records: Iterable[dict[str, Any]]) -> int:
        _check_collection(collection)
        rows = [(collection, _record_id(r), json.dumps(r)) for r in records]

        def op(conn: sqlite3.Connection) -> int:
            try:
                conn.executemany(
                    "INSERT INTO records (collection, id, data) VALUES (?, ?, ?)",
                    rows,
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError(
                    f"Bulk insert into {collection!r} hit an existing id: {e}"
                ) from e
            return len(rows)

        return await self._run(op)

    async def clear(self, collection: str) -> None:
        _check_collection(collection)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM records WHERE collection = ?", (collection,))

        await self._run(op)

    async def count(self, collection: str) -> int:
        _check_collection(collection)

        def op(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "SELECT COUNT(*) FROM records WHERE collection = ?",
                (collection,),
            ).fetchone()[0]

        return await self._run(op)
