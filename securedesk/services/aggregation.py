"""
Aggregation Service
===================

Per-user record counts across the four vault collections, either as a
one-shot snapshot or as a live subscription.

Live counts use the backend's change notification when it has one and fall
back to a background polling task otherwise. Either way the observer is told
about the first value of each collection and afterwards only about changes.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Final, Optional

from securedesk.core.config import AggregationConfig
from securedesk.db.backend import PersistenceBackend, Unsubscribe
from securedesk.records.schemas import BANK_DETAILS, CARDS, CREDENTIALS, DOCUMENTS
from securedesk.utils.timeutil import utc_now_iso

logger = logging.getLogger("securedesk.aggregation")

COUNTED_COLLECTIONS: Final[tuple[str, ...]] = (
    CREDENTIALS.name,
    CARDS.name,
    BANK_DETAILS.name,
    DOCUMENTS.name,
)

ChangeCallback = Callable[[str, int], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True, slots=True)
class CountSnapshot:
    """Record counts for one user at a point in time."""

    credentials: int = 0
    cards: int = 0
    bank_details: int = 0
    documents: int = 0
    last_updated: Optional[str] = None

    def as_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in COUNTED_COLLECTIONS}


class CountSubscription:
    """
    Handle for a live count observation.

    Calling the handle, ``close()`` and leaving a ``with`` / ``async with``
    block all release it. Releasing twice is a no-op, and no callback runs
    once it is closed.
    """

    def __init__(
        self,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._on_change = on_change
        self._on_error = on_error
        self._counts: dict[str, int] = {name: 0 for name in COUNTED_COLLECTIONS}
        self._seen: set[str] = set()
        self._releasers: list[Unsubscribe] = []
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def inert(cls) -> CountSubscription:
        """An already-closed subscription that reports zeros."""
        subscription = cls(on_change=lambda collection, count: None)
        subscription._closed = True
        return subscription

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def counts(self) -> dict[str, int]:
        """Latest known count per collection."""
        with self._lock:
            return dict(self._counts)

    def _add_releaser(self, release: Unsubscribe) -> None:
        with self._lock:
            if not self._closed:
                self._releasers.append(release)
                return
        release()

    def _attach_task(self, task: asyncio.Task) -> None:
        self._task = task
        self._add_releaser(task.cancel)

    def _observe(self, collection: str, count: int) -> None:
        with self._lock:
            if self._closed:
                return
            if collection in self._seen and self._counts[collection] == count:
                return
            self._seen.add(collection)
            self._counts[collection] = count
        try:
            self._on_change(collection, count)
        except Exception as e:
            self._report_error(e)

    def _report_error(self, error: Exception) -> None:
        if self._closed:
            return
        if self._on_error is None:
            logger.warning("Count refresh failed: %s", error)
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("Count error handler raised")

    def close(self) -> None:
        """Release every underlying subscription or polling task."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            releasers, self._releasers = self._releasers, []

        for release in releasers:
            try:
                release()
            except Exception:
                logger.exception("Releasing count subscription failed")

    async def aclose(self) -> None:
        """Close and wait for the polling task, if any, to finish."""
        self.close()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass

    def __call__(self) -> None:
        self.close()

    def __enter__(self) -> CountSubscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def __aenter__(self) -> CountSubscription:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"CountSubscription({state}, counts={self.counts})"


class AggregationService:
    """
    Counts a user's records per collection.

    Usage:
        service = AggregationService(backend)
        snapshot = await service.snapshot_counts(user_id)

        async with service.watch_counts(user_id, on_change) as subscription:
            ...
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        config: Optional[AggregationConfig] = None,
    ) -> None:
        self._backend = backend
        self._config = config or AggregationConfig()

    @property
    def poll_interval(self) -> float:
        return self._config.poll_interval_seconds

    async def _count_all(self, user_id: str) -> dict[str, int]:
        # Collect every outcome so no failed count is left unretrieved
        results = await asyncio.gather(
            *(
                self._backend.count_by_filter(name, {"user_id": user_id})
                for name in COUNTED_COLLECTIONS
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip(COUNTED_COLLECTIONS, results))

    async def snapshot_counts(self, user_id: str) -> CountSnapshot:
        """
        Count every collection once.

        Raises:
            BackendUnavailableError: Storage failure
        """
        if not user_id:
            return CountSnapshot()
        counts = await self._count_all(user_id)
        return CountSnapshot(**counts, last_updated=utc_now_iso())

    async def observe_counts(
        self,
        user_id: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> CountSubscription:
        """
        Start observing a user's counts.

        ``on_change(collection, count)`` fires once per collection for the
        first known value and then on every change.
        """
        if not user_id:
            return CountSubscription.inert()

        subscription = CountSubscription(on_change, on_error)
        if self._backend.supports_subscriptions:
            self._subscribe(subscription, user_id)
        else:
            subscription._attach_task(
                asyncio.create_task(self._poll_loop(subscription, user_id))
            )
            logger.debug("Polling counts every %ss", self.poll_interval)
        return subscription

    def _subscribe(self, subscription: CountSubscription, user_id: str) -> None:
        try:
            for name in COUNTED_COLLECTIONS:
                release = self._backend.subscribe(
                    name,
                    {"user_id": user_id},
                    lambda snapshot, collection=name: subscription._observe(collection, len(snapshot)),
                )
                subscription._add_releaser(release)
        except Exception:
            subscription.close()
            raise

    async def _poll_loop(self, subscription: CountSubscription, user_id: str) -> None:
        while not subscription.closed:
            try:
                counts = await self._count_all(user_id)
            except Exception as e:
                subscription._report_error(e)
            else:
                for name, count in counts.items():
                    subscription._observe(name, count)
            await asyncio.sleep(self.poll_interval)

    @asynccontextmanager
    async def watch_counts(
        self,
        user_id: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> AsyncIterator[CountSubscription]:
        """Observe counts for the duration of an ``async with`` block."""
        subscription = await self.observe_counts(user_id, on_change, on_error)
        try:
            yield subscription
        finally:
            await subscription.aclose()
