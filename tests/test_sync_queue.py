"""Tests for the pending-sync queue: coalescing, bounds, retry/backoff, worker."""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from blocos.errors import SyncQueueFullError
from blocos.schemas.status import OverrideRow
from blocos.services.sync_queue import PendingSyncQueue
from tests.fakes import FakeRemoteStore

T1 = datetime(2026, 2, 14, 10, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(minutes=5)


def _row(event_id, status="going", updated_at=T1):
    return OverrideRow(owner_id="user-1", base_event_id=event_id, status=status, updated_at=updated_at)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def queue(remote, sleeps):
    return PendingSyncQueue(remote, maxsize=3, max_retries=3, backoff_seconds=0.5, sleep=sleeps.append)


class TestEnqueue:

    def test_coalesces_per_event(self, queue):
        queue.enqueue(_row("ev-1", status="maybe", updated_at=T1))
        queue.enqueue(_row("ev-1", status="sure", updated_at=T2))
        assert len(queue) == 1
        assert queue.pending()[0].status.value == "sure"

    def test_full_queue_rejects_new_events(self, queue):
        for i in range(3):
            queue.enqueue(_row(f"ev-{i}"))
        with pytest.raises(SyncQueueFullError):
            queue.enqueue(_row("ev-9"))
        assert queue.is_synced("ev-9") is False

    def test_full_queue_still_accepts_known_event(self, queue):
        for i in range(3):
            queue.enqueue(_row(f"ev-{i}"))
        queue.enqueue(_row("ev-0", status="sure"))
        assert len(queue) == 3

    def test_unknown_event_counts_as_synced(self, queue):
        assert queue.is_synced("never-touched") is True


class TestDrain:

    def test_successful_drain(self, queue, remote):
        queue.enqueue(_row("ev-1"))
        queue.enqueue(_row("ev-2"))
        assert queue.drain() == 2
        assert len(queue) == 0
        assert queue.is_synced("ev-1") and queue.is_synced("ev-2")
        assert remote.row("user-1", "ev-2") is not None

    def test_retries_with_exponential_backoff(self, queue, remote, sleeps):
        remote.fail_upserts = 2
        queue.enqueue(_row("ev-1"))
        assert queue.drain() == 1
        assert sleeps == [0.5, 1.0]
        assert len(remote.upsert_calls) == 3

    def test_exhausted_retries_leave_row_pending(self, queue, remote, sleeps):
        remote.fail_upserts = 10
        queue.enqueue(_row("ev-1"))
        assert queue.drain() == 0
        assert len(queue) == 1
        assert queue.is_synced("ev-1") is False
        assert sleeps == [0.5, 1.0]

    def test_row_replaced_during_push_stays_pending(self, remote):
        queue = PendingSyncQueue(remote, sleep=lambda _: None)
        queue.enqueue(_row("ev-1", updated_at=T1))
        original_upsert = remote.upsert_overrides

        def _upsert_and_race(rows):
            original_upsert(rows)
            queue.enqueue(_row("ev-1", status="sure", updated_at=T2))

        remote.upsert_overrides = _upsert_and_race
        queue.drain()
        assert len(queue) == 1
        assert queue.pending()[0].updated_at == T2


class TestMarkSynced:

    def test_drops_rows_not_newer_than_written(self, queue):
        queue.enqueue(_row("ev-1", updated_at=T1))
        queue.mark_synced([_row("ev-1", updated_at=T2)])
        assert len(queue) == 0
        assert queue.is_synced("ev-1")

    def test_keeps_newer_pending_rows(self, queue):
        queue.enqueue(_row("ev-1", updated_at=T2))
        queue.mark_synced([_row("ev-1", updated_at=T1)])
        assert len(queue) == 1
        assert queue.is_synced("ev-1") is False

    def test_clear_keeps_events_unsynced(self, queue):
        queue.enqueue(_row("ev-1"))
        queue.clear()
        assert len(queue) == 0
        assert queue.is_synced("ev-1") is False

        queue.mark_synced([_row("ev-1")])
        assert queue.is_synced("ev-1")

    def test_mark_unsynced_without_pending_row(self, queue):
        assert queue.is_synced("ev-1")
        queue.mark_unsynced("ev-1")
        assert queue.is_synced("ev-1") is False
        assert len(queue) == 0


class TestWorker:

    def test_background_worker_drains(self):
        remote = FakeRemoteStore()
        written = threading.Event()
        original_upsert = remote.upsert_overrides

        def _upsert(rows):
            original_upsert(rows)
            written.set()

        remote.upsert_overrides = _upsert
        queue = PendingSyncQueue(remote, sleep=lambda _: None)
        queue.start(interval_seconds=0.01)
        try:
            queue.enqueue(_row("ev-1"))
            assert written.wait(2)
        finally:
            queue.stop(timeout=2)
        assert remote.row("user-1", "ev-1") is not None

    def test_start_twice_keeps_one_worker(self, remote):
        queue = PendingSyncQueue(remote, sleep=lambda _: None)
        queue.start(interval_seconds=0.01)
        worker = queue._worker
        queue.start(interval_seconds=0.01)
        assert queue._worker is worker
        queue.stop(timeout=2)
