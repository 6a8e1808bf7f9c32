"""Pending-sync queue for remote writes issued by set_status / set_override.

Local writes always succeed first; the matching remote row is enqueued here
and pushed later with retry and exponential backoff. Entries coalesce per
event so only the latest row for an event is ever sent. Rows that exhaust
their retries stay pending; the next reconciliation pushes them because the
local timestamp is then newer than the remote one.
"""
import logging
import threading
import time
from typing import Callable, Optional

from blocos.errors import RemoteStoreError, SyncQueueFullError
from blocos.schemas.status import OverrideRow
from blocos.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)


class PendingSyncQueue:
    """Bounded, per-event coalescing queue drained into a RemoteStore."""

    def __init__(
        self,
        remote: RemoteStore,
        maxsize: int = 500,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.remote = remote
        self.maxsize = maxsize
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._pending: dict[str, OverrideRow] = {}
        self._synced: dict[str, bool] = {}
        self._lock = threading.Lock()
        self._wakeup = threading.Event()
        self._stop = threading.Event()
        self._worker: Optional[threading.Thread] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def enqueue(self, row: OverrideRow) -> None:
        """Queue ``row`` for upload, replacing any pending row for the same event."""
        with self._lock:
            if row.base_event_id not in self._pending and len(self._pending) >= self.maxsize:
                self._synced[row.base_event_id] = False
                raise SyncQueueFullError(
                    f"Pending-sync queue is full ({self.maxsize}); {row.base_event_id} left unsynced"
                )
            self._pending[row.base_event_id] = row
            self._synced[row.base_event_id] = False
        self._wakeup.set()

    def pending(self) -> list[OverrideRow]:
        with self._lock:
            return list(self._pending.values())

    def is_synced(self, event_id: str) -> bool:
        """False while a write for ``event_id`` has not reached the remote store."""
        with self._lock:
            return self._synced.get(event_id, True)

    def mark_unsynced(self, event_id: str) -> None:
        """Flag a local write for ``event_id`` that has not reached the remote store yet."""
        with self._lock:
            self._synced[event_id] = False

    def mark_synced(self, rows: list[OverrideRow]) -> None:
        """Drop pending entries superseded by ``rows`` (already written remotely)."""
        with self._lock:
            for row in rows:
                current = self._pending.get(row.base_event_id)
                if current is not None and _not_after(current, row):
                    del self._pending[row.base_event_id]
                if row.base_event_id not in self._pending:
                    self._synced[row.base_event_id] = True

    def clear(self) -> None:
        """Drop pending rows; their events stay unsynced until a merge or drain writes them."""
        with self._lock:
            self._pending.clear()

    def drain(self) -> int:
        """Push every pending row once (with retries); return how many were written."""
        written = 0
        for row in self.pending():
            if self._push_with_retry(row):
                written += 1
                with self._lock:
                    if self._pending.get(row.base_event_id) is row:
                        del self._pending[row.base_event_id]
                        self._synced[row.base_event_id] = True
        return written

    def _push_with_retry(self, row: OverrideRow) -> bool:
        delay = self.backoff_seconds
        for attempt in range(1, self.max_retries + 1):
            try:
                self.remote.upsert_overrides([row])
                return True
            except RemoteStoreError as exc:
                logger.warning(
                    "Remote write for event %s failed (attempt %d/%d): %s",
                    row.base_event_id, attempt, self.max_retries, exc,
                )
                if attempt < self.max_retries:
                    self._sleep(delay)
                    delay *= 2
        logger.error("Giving up on remote write for event %s; left pending", row.base_event_id)
        return False

    # --- background worker -------------------------------------------------

    def start(self, interval_seconds: float = 5.0) -> None:
        """Drain in a daemon thread whenever rows arrive, or every ``interval_seconds``."""
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, args=(interval_seconds,), name="blocos-sync-queue", daemon=True,
        )
        self._worker.start()
        logger.info("Pending-sync worker started")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self._wakeup.set()
        if self._worker is not None:
            self._worker.join(timeout)
            self._worker = None
        logger.info("Pending-sync worker stopped")

    def _run(self, interval_seconds: float) -> None:
        while not self._stop.is_set():
            self._wakeup.wait(interval_seconds)
            self._wakeup.clear()
            if self._stop.is_set():
                break
            self.drain()


def _not_after(pending: OverrideRow, written: OverrideRow) -> bool:
    if pending.updated_at is None:
        return True
    if written.updated_at is None:
        return False
    return pending.updated_at <= written.updated_at
