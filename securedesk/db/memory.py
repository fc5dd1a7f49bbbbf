"""
In-Memory Backend
=================

Process-local document store with native change notification.

Subscribers get the current snapshot as soon as they subscribe and a
fresh one after every mutation of the collection they watch.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading

from securedesk.core.exceptions import BackendUnavailableError
from securedesk.db.backend import (
    Filter,
    PersistenceBackend,
    Record,
    SnapshotCallback,
    Unsubscribe,
    matches_filter,
    validate_filter,
    validate_name,
)


class InMemoryBackend(PersistenceBackend):
    """
    Dictionary-backed store, safe to share between tasks and threads.

    Usage:
        backend = InMemoryBackend()
        await backend.insert("cards", {"id": "c1", "user_id": "u1"})
        unsubscribe = backend.subscribe("cards", {"user_id": "u1"}, print)
    """

    supports_subscriptions = True

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, dict[str, Record]] = {}
        self._subscribers: dict[str, dict[int, tuple[dict, SnapshotCallback]]] = {}
        self._tokens = itertools.count()
        self._closed = False
        self._log = logging.getLogger("securedesk.db.memory")

    def _check_open(self) -> None:
        if self._closed:
            raise BackendUnavailableError("Backend is closed")

    def _select(self, collection: str, flt: Filter) -> list[Record]:
        # Caller holds the lock
        rows = self._collections.get(collection, {}).values()
        return [copy.deepcopy(row) for row in rows if matches_filter(row, flt)]

    async def insert(self, collection: str, record: Record) -> None:
        validate_name(collection)
        record_id = record.get("id")
        if not record_id:
            raise ValueError("Record must carry an id")

        with self._lock:
            self._check_open()
            rows = self._collections.setdefault(collection, {})
            if record_id in rows:
                raise BackendUnavailableError(f"Duplicate record id in {collection}")
            rows[record_id] = copy.deepcopy(dict(record))

        self._notify(collection)

    async def get_by_filter(self, collection: str, flt: Filter) -> list[Record]:
        validate_name(collection)
        validate_filter(flt)
        with self._lock:
            self._check_open()
            return self._select(collection, flt)

    async def count_by_filter(self, collection: str, flt: Filter) -> int:
        validate_name(collection)
        validate_filter(flt)
        with self._lock:
            self._check_open()
            rows = self._collections.get(collection, {}).values()
            return sum(1 for row in rows if matches_filter(row, flt))

    async def update_by_id(self, collection: str, record_id: str, patch: Record) -> bool:
        validate_name(collection)
        with self._lock:
            self._check_open()
            row = self._collections.get(collection, {}).get(record_id)
            if row is None:
                return False
            row.update(copy.deepcopy(dict(patch)))
            row["id"] = record_id

        self._notify(collection)
        return True

    async def delete_by_filter(self, collection: str, flt: Filter) -> int:
        validate_name(collection)
        validate_filter(flt)
        with self._lock:
            self._check_open()
            rows = self._collections.get(collection, {})
            doomed = [rid for rid, row in rows.items() if matches_filter(row, flt)]
            for rid in doomed:
                del rows[rid]

        if doomed:
            self._notify(collection)
        return len(doomed)

    def subscribe(
        self,
        collection: str,
        flt: Filter,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        validate_name(collection)
        validate_filter(flt)
        token = next(self._tokens)
        with self._lock:
            self._check_open()
            self._subscribers.setdefault(collection, {})[token] = (dict(flt), on_snapshot)
            snapshot = self._select(collection, flt)

        self._deliver(on_snapshot, snapshot, collection)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.get(collection, {}).pop(token, None)

        return unsubscribe

    def _notify(self, collection: str) -> None:
        with self._lock:
            pending = [
                (callback, self._select(collection, flt))
                for flt, callback in self._subscribers.get(collection, {}).values()
            ]

        # Callbacks run outside the lock so they may read the backend again
        for callback, snapshot in pending:
            self._deliver(callback, snapshot, collection)

    def _deliver(self, callback: SnapshotCallback, snapshot: list[Record], collection: str) -> None:
        try:
            callback(snapshot)
        except Exception:
            # A broken listener must not fail the writer that triggered it
            self._log.exception("Snapshot listener for %s raised", collection)

    @property
    def subscriber_count(self) -> int:
        """Number of live subscriptions across all collections."""
        with self._lock:
            return sum(len(subs) for subs in self._subscribers.values())

    async def close(self) -> None:
        with self._lock:
            self._closed = True
            self._subscribers.clear()

    def __repr__(self) -> str:
        with self._lock:
            sizes: dict[str, int] = {name: len(rows) for name, rows in self._collections.items()}
        return f"InMemoryBackend(collections={sizes})"
