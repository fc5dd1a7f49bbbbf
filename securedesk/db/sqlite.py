"""
SQLite Backend
==============

Local embedded persistence. Each record is stored as a JSON document in a
single ``records`` table keyed by ``(collection, id)``; the owner id is
copied into an indexed column so per-user queries stay cheap.

Blocking sqlite3 calls run in worker threads (``asyncio.to_thread``) with
one connection per call, so concurrent tasks never share a connection.

SQLite has no change notification: ``supports_subscriptions`` is False and
live counts fall back to polling.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any, Callable, Final, Iterator, TypeVar

from securedesk.core.exceptions import BackendUnavailableError
from securedesk.db.backend import Filter, PersistenceBackend, Record, validate_name

T = TypeVar("T")

# Columns that are mirrored out of the JSON body
_COLUMN_FIELDS: Final[frozenset[str]] = frozenset({"id", "user_id"})


class SqliteBackend(PersistenceBackend):
    """
    SQLite document store.

    Usage:
        backend = SqliteBackend(data_dir / "securedesk.db")
        await backend.insert("credentials", record)

    Security Notes:
        - All statements use bound parameters; field names inside JSON
          paths are restricted to plain identifiers
        - Only what the caller hands in is stored; sensitive fields arrive
          here already encrypted
    """

    __slots__ = ("_db_path", "_log")

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS records (
        collection TEXT NOT NULL,
        id TEXT NOT NULL,
        user_id TEXT,
        body TEXT NOT NULL,
        PRIMARY KEY (collection, id)
    );

    CREATE INDEX IF NOT EXISTS idx_records_owner ON records(collection, user_id);
    """

    def __init__(self, db_path: Path | str) -> None:
        """
        Initialize the backend and create the schema if needed.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._log = logging.getLogger("securedesk.db.sqlite")
        self.initialize_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection; commit on success, roll back on error, always close."""
        with closing(sqlite3.connect(self._db_path, timeout=10.0)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    def initialize_db(self) -> None:
        """Create the parent directory and tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._connect() as conn:
                conn.executescript(self._SCHEMA)
        except sqlite3.Error as e:
            raise BackendUnavailableError(f"Cannot initialize database: {e}") from e

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.IntegrityError as e:
            raise BackendUnavailableError(f"Integrity violation: {e}") from e
        except sqlite3.Error as e:
            self._log.warning("SQLite operation failed: %s", type(e).__name__)
            raise BackendUnavailableError(f"Database error: {e}") from e

    @staticmethod
    def _where(collection: str, flt: Filter) -> tuple[str, list[Any]]:
        clauses = ["collection = ?"]
        params: list[Any] = [collection]

        for key, value in flt.items():
            validate_name(key, "field")
            column = key if key in _COLUMN_FIELDS else f"json_extract(body, '$.{key}')"
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(value)

        return " AND ".join(clauses), params

    # -- blocking implementations, run in worker threads --------------------

    def _insert_sync(self, collection: str, record: Record) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO records (collection, id, user_id, body) VALUES (?, ?, ?, ?)",
                (collection, record["id"], record.get("user_id"), json.dumps(record)),
            )

    def _select_sync(self, collection: str, flt: Filter) -> list[Record]:
        where, params = self._where(collection, flt)
        with self._connect() as conn:
            rows = conn.execute(f"SELECT body FROM records WHERE {where}", params).fetchall()
        return [json.loads(row["body"]) for row in rows]

    def _count_sync(self, collection: str, flt: Filter) -> int:
        where, params = self._where(collection, flt)
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM records WHERE {where}", params).fetchone()
        return int(row["n"])

    def _update_sync(self, collection: str, record_id: str, patch: Record) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
            if row is None:
                return False

            body = json.loads(row["body"])
            body.update(patch)
            body["id"] = record_id
            conn.execute(
                "UPDATE records SET user_id = ?, body = ? WHERE collection = ? AND id = ?",
                (body.get("user_id"), json.dumps(body), collection, record_id),
            )
        return True

    def _delete_sync(self, collection: str, flt: Filter) -> int:
        where, params = self._where(collection, flt)
        with self._connect() as conn:
            cursor = conn.execute(f"DELETE FROM records WHERE {where}", params)
            return cursor.rowcount

    # -- PersistenceBackend ------------------------------------------------------

    async def insert(self, collection: str, record: Record) -> None:
        validate_name(collection)
        if not record.get("id"):
            raise ValueError("Record must carry an id")
        await self._run(self._insert_sync, collection, dict(record))

    async def get_by_filter(self, collection: str, flt: Filter) -> list[Record]:
        validate_name(collection)
        return await self._run(self._select_sync, collection, dict(flt))

    async def count_by_filter(self, collection: str, flt: Filter) -> int:
        validate_name(collection)
        return await self._run(self._count_sync, collection, dict(flt))

    async def update_by_id(self, collection: str, record_id: str, patch: Record) -> bool:
        validate_name(collection)
        return await self._run(self._update_sync, collection, record_id, dict(patch))

    async def delete_by_filter(self, collection: str, flt: Filter) -> int:
        validate_name(collection)
        return await self._run(self._delete_sync, collection, dict(flt))

    def __repr__(self) -> str:
        return f"SqliteBackend(db_path={str(self._db_path)!r})"
