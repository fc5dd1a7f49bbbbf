# Tests for the aggregation service
# Covers: one-shot snapshots, push-based live counts (memory backend),
#          polling fallback (sqlite backend), subscription lifecycle.

import asyncio

import pytest

from securedesk.core.config import AggregationConfig
from securedesk.core.exceptions import BackendUnavailableError
from securedesk.records import CARDS, CREDENTIALS, DOCUMENTS, RecordStore
from securedesk.services import AggregationService, CountSnapshot, CountSubscription

ALICE = "user-alice"
BOB = "user-bob"
ZEROS = {"credentials": 0, "cards": 0, "bank_details": 0, "documents": 0}

CARD = {
    "bank_name": "HDFC",
    "card_name": "Regalia",
    "card_holder_name": "Alice",
    "card_number": "4111111111111111",
    "cvv": "123",
}


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, collection, count):
        self.events.append((collection, count))

    def latest(self):
        return dict(self.events)


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# ── Snapshots ────────────────────────────────────────────────────────

class TestSnapshotCounts:
    @pytest.mark.asyncio
    async def test_counts_per_collection(self, backend, codec):
        await RecordStore(CREDENTIALS, backend, codec).create({"title": "t", "password": "p"}, ALICE)
        await RecordStore(CARDS, backend, codec).create(CARD, ALICE)
        await RecordStore(CARDS, backend, codec).create(CARD, ALICE)
        await RecordStore(CARDS, backend, codec).create(CARD, BOB)

        snapshot = await AggregationService(backend).snapshot_counts(ALICE)
        assert snapshot.as_dict() == {**ZEROS, "credentials": 1, "cards": 2}
        assert snapshot.last_updated is not None

    @pytest.mark.asyncio
    async def test_no_user_is_all_zero(self, memory_backend):
        snapshot = await AggregationService(memory_backend).snapshot_counts("")
        assert snapshot == CountSnapshot()
        assert snapshot.as_dict() == ZEROS

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, memory_backend):
        await memory_backend.close()
        with pytest.raises(BackendUnavailableError):
            await AggregationService(memory_backend).snapshot_counts(ALICE)


# ── Push (memory backend) ────────────────────────────────────────────

class TestPushObservation:
    @pytest.mark.asyncio
    async def test_zeros_reported_before_any_creation(self, memory_backend):
        recorder = Recorder()
        subscription = await AggregationService(memory_backend).observe_counts(ALICE, recorder)
        try:
            assert recorder.latest() == ZEROS
            assert len(recorder.events) == 4
            assert subscription.counts == ZEROS
        finally:
            subscription()

    @pytest.mark.asyncio
    async def test_changes_reported_without_duplicates(self, memory_backend, codec):
        recorder = Recorder()
        cards = RecordStore(CARDS, memory_backend, codec)
        subscription = await AggregationService(memory_backend).observe_counts(ALICE, recorder)
        try:
            recorder.events.clear()
            card = await cards.create(CARD, ALICE)
            await cards.create(CARD, BOB)
            await cards.update(card.id, {"color": "blue"}, ALICE)
            await cards.delete(card.id, ALICE)

            assert recorder.events == [("cards", 1), ("cards", 0)]
            assert subscription.counts["cards"] == 0
        finally:
            subscription.close()

    @pytest.mark.asyncio
    async def test_unsubscribe_idempotent_and_silent(self, memory_backend, codec):
        recorder = Recorder()
        subscription = await AggregationService(memory_backend).observe_counts(ALICE, recorder)
        subscription()
        subscription()
        subscription.close()
        assert subscription.closed
        assert memory_backend.subscriber_count == 0

        before = list(recorder.events)
        await RecordStore(DOCUMENTS, memory_backend, codec).create(
            {"type": "pan", "name": "PAN", "document_number": "ABCDE1234F"}, ALICE
        )
        assert recorder.events == before

    @pytest.mark.asyncio
    async def test_sync_context_manager_releases(self, memory_backend):
        with await AggregationService(memory_backend).observe_counts(ALICE, Recorder()) as sub:
            assert memory_backend.subscriber_count == 4
        assert sub.closed
        assert memory_backend.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_watch_counts_releases_on_error(self, memory_backend):
        service = AggregationService(memory_backend)
        with pytest.raises(RuntimeError):
            async with service.watch_counts(ALICE, Recorder()) as sub:
                assert memory_backend.subscriber_count == 4
                raise RuntimeError("caller failure")
        assert sub.closed
        assert memory_backend.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_no_user_gives_inert_subscription(self, memory_backend):
        recorder = Recorder()
        subscription = await AggregationService(memory_backend).observe_counts("", recorder)
        assert subscription.closed
        assert subscription.counts == ZEROS
        assert recorder.events == []
        assert memory_backend.subscriber_count == 0
        subscription()


# ── Polling (sqlite backend) ─────────────────────────────────────────

class TestPollingObservation:
    @pytest.mark.asyncio
    async def test_polls_and_reports_changes(self, sqlite_backend, codec):
        service = AggregationService(sqlite_backend, AggregationConfig(poll_interval_seconds=0.02))
        recorder = Recorder()

        async with service.watch_counts(ALICE, recorder) as subscription:
            await _wait_for(lambda: len(recorder.events) == 4)
            assert recorder.latest() == ZEROS

            await RecordStore(CREDENTIALS, sqlite_backend, codec).create(
                {"title": "t", "password": "p"}, ALICE
            )
            await _wait_for(lambda: subscription.counts["credentials"] == 1)

            # Several more polls with nothing changed
            await asyncio.sleep(0.1)
            assert recorder.events.count(("credentials", 1)) == 1
            assert len(recorder.events) == 5

        assert subscription.closed

    @pytest.mark.asyncio
    async def test_poll_errors_go_to_handler_and_loop_continues(self):
        class FlakyBackend:
            supports_subscriptions = False

            def __init__(self):
                self.calls = 0

            async def count_by_filter(self, collection, flt):
                self.calls += 1
                if self.calls <= 4:
                    raise BackendUnavailableError("offline")
                return 3

        errors = []
        recorder = Recorder()
        service = AggregationService(FlakyBackend(), AggregationConfig(poll_interval_seconds=0.01))
        async with service.watch_counts(ALICE, recorder, on_error=errors.append):
            await _wait_for(lambda: len(recorder.events) == 4)

        assert errors
        assert all(isinstance(e, BackendUnavailableError) for e in errors)
        assert recorder.latest() == {name: 3 for name in ZEROS}

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_stop_polling(self, sqlite_backend, codec):
        service = AggregationService(sqlite_backend, AggregationConfig(poll_interval_seconds=0.01))
        calls = []
        errors = []

        def on_change(collection, count):
            calls.append((collection, count))
            if len(calls) == 1:
                raise ValueError("observer bug")

        async with service.watch_counts(ALICE, on_change, on_error=errors.append) as subscription:
            await _wait_for(lambda: len(calls) == 4)
            await RecordStore(CREDENTIALS, sqlite_backend, codec).create(
                {"title": "t", "password": "p"}, ALICE
            )
            await _wait_for(lambda: ("credentials", 1) in calls)
            assert not subscription._task.done()

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)

    @pytest.mark.asyncio
    async def test_failing_observer_without_handler_is_logged(self, memory_backend, codec, caplog):
        def on_change(collection, count):
            raise ValueError("observer bug")

        with caplog.at_level("WARNING", logger="securedesk.aggregation"):
            subscription = await AggregationService(memory_backend).observe_counts(ALICE, on_change)
            try:
                await RecordStore(CARDS, memory_backend, codec).create(CARD, ALICE)
                assert subscription.counts["cards"] == 1
            finally:
                subscription.close()

        assert "observer bug" in caplog.text

    @pytest.mark.asyncio
    async def test_close_stops_polling(self, sqlite_backend):
        service = AggregationService(sqlite_backend, AggregationConfig(poll_interval_seconds=0.01))
        recorder = Recorder()
        subscription = await service.observe_counts(ALICE, recorder)
        await _wait_for(lambda: len(recorder.events) == 4)

        await subscription.aclose()
        assert subscription.closed
        assert isinstance(subscription, CountSubscription)


def test_default_poll_interval(memory_backend):
    assert AggregationService(memory_backend).poll_interval == 30.0
