"""Status API and sign-in reconciliation for one device session.

A SyncSession owns the in-memory status, override and going-role maps for a
device. Every mutation replaces a whole map (copy-on-write) and writes it to
the local store before anything touches the network. When a user is signed
in, the matching remote row is handed to the pending-sync queue.

Signing in moves the session from DISCONNECTED to CONNECTED and runs
merge_and_sync exactly once. Signing out goes back to DISCONNECTED without
any resync; the local maps stay as last merged.
"""
import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Callable, Optional, Union

from blocos.errors import BlocosError, RemoteTimeoutError, SyncQueueFullError
from blocos.models.status import EventStatus
from blocos.schemas.status import (
    GoingRoleRecord,
    OverrideRecord,
    OverrideRow,
    StatusRecord,
    utcnow,
)
from blocos.services.auth import AuthNotifier, AuthState, AuthUser
from blocos.services.reconciliation import MergeResult, TiePolicy, reconcile
from blocos.services.remote_store import RemoteStore
from blocos.services.sync_queue import PendingSyncQueue
from blocos.storage.local_store import LocalStore

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    disconnected = "disconnected"
    connected = "connected"


class SyncSession:
    def __init__(
        self,
        local_store: LocalStore,
        remote: RemoteStore,
        queue: Optional[PendingSyncQueue] = None,
        tie_policy: TiePolicy = TiePolicy.remote,
        status_fallback: Optional[EventStatus] = None,
        remote_timeout: Optional[float] = None,
        drain_interval: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.local_store = local_store
        self.remote = remote
        self.queue = queue if queue is not None else PendingSyncQueue(remote)
        self.tie_policy = TiePolicy(tie_policy)
        self.status_fallback = EventStatus(status_fallback) if status_fallback else None
        self.remote_timeout = remote_timeout
        self.drain_interval = drain_interval
        self._clock = clock
        self._lock = threading.RLock()

        self._status_map = local_store.load_status_map()
        self._override_map = local_store.load_override_map()
        self._going_role_map = local_store.load_going_role_map()

        self._user: Optional[AuthUser] = None
        self.state = ConnectionState.disconnected
        self.syncing = False
        self.last_sync_error: Optional[BaseException] = None

    @classmethod
    def from_settings(cls, local_store: LocalStore, remote: RemoteStore, settings) -> "SyncSession":
        queue = PendingSyncQueue(
            remote,
            maxsize=settings.SYNC_QUEUE_MAXSIZE,
            max_retries=settings.SYNC_MAX_RETRIES,
            backoff_seconds=settings.SYNC_BACKOFF_SECONDS,
        )
        return cls(
            local_store,
            remote,
            queue=queue,
            tie_policy=TiePolicy(settings.TIE_POLICY),
            status_fallback=settings.STATUS_FALLBACK,
            remote_timeout=settings.REMOTE_TIMEOUT_SECONDS,
            drain_interval=settings.SYNC_DRAIN_INTERVAL_SECONDS,
        )

    # --- read side ---------------------------------------------------------

    @property
    def status_map(self) -> dict[str, StatusRecord]:
        return self._status_map

    @property
    def override_map(self) -> dict[str, OverrideRecord]:
        return self._override_map

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def get_status(self, event_id: str) -> Optional[EventStatus]:
        record = self._status_map.get(event_id)
        return record.status if record else None

    def get_override(self, event_id: str) -> Optional[OverrideRecord]:
        return self._override_map.get(event_id)

    def get_going_role(self, event_id: str) -> Optional[str]:
        record = self._going_role_map.get(event_id)
        return record.role if record else None

    def is_synced(self, event_id: str) -> bool:
        return self.queue.is_synced(event_id)

    # --- write side --------------------------------------------------------

    def set_status(self, event_id: str, status: Union[EventStatus, str]) -> StatusRecord:
        """Record ``status`` locally now; queue the remote write when signed in."""
        record = StatusRecord(status=EventStatus(status), updated_at=self._clock())
        with self._lock:
            self._persist_status({**self._status_map, event_id: record})
            self.queue.mark_unsynced(event_id)
            override = self._override_map.get(event_id)
            user = self._user

        if user is not None:
            self._enqueue(OverrideRow(
                owner_id=user.id,
                base_event_id=event_id,
                status=record.status,
                hidden=override.hidden if override else None,
                notes=override.notes if override else None,
                updated_at=record.updated_at,
            ))
        return record

    def set_override(
        self,
        event_id: str,
        hidden: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> OverrideRecord:
        """Record the override locally now; the remote row carries the current status."""
        record = OverrideRecord(hidden=hidden, notes=notes, updated_at=self._clock())
        with self._lock:
            self._persist_overrides({**self._override_map, event_id: record})
            self.queue.mark_unsynced(event_id)
            current = self._status_map.get(event_id)
            user = self._user

        if user is not None:
            self._enqueue(OverrideRow(
                owner_id=user.id,
                base_event_id=event_id,
                status=current.status if current else self.status_fallback,
                hidden=hidden if hidden is not None else False,
                notes=notes,
                updated_at=record.updated_at,
            ))
        return record

    def set_going_role(self, event_id: str, role: str) -> GoingRoleRecord:
        record = GoingRoleRecord(role=role, updated_at=self._clock())
        with self._lock:
            self._going_role_map = {**self._going_role_map, event_id: record}
            self.local_store.save_going_role_map(self._going_role_map)
        return record

    def start_background_sync(self) -> None:
        """Drain the pending-sync queue in a worker thread every ``drain_interval`` seconds."""
        self.queue.start(interval_seconds=self.drain_interval)

    def stop_background_sync(self, timeout: Optional[float] = None) -> None:
        self.queue.stop(timeout)

    def _enqueue(self, row: OverrideRow) -> None:
        try:
            self.queue.enqueue(row)
        except SyncQueueFullError as exc:
            logger.warning("%s; it will be pushed on the next reconciliation", exc)

    def _persist_status(self, next_map: dict[str, StatusRecord]) -> None:
        self._status_map = next_map
        self.local_store.save_status_map(next_map)

    def _persist_overrides(self, next_map: dict[str, OverrideRecord]) -> None:
        self._override_map = next_map
        self.local_store.save_override_map(next_map)

    # --- reconciliation ----------------------------------------------------

    def merge_and_sync(self) -> Optional[MergeResult]:
        """Merge local maps with the signed-in user's remote rows.

        One remote read and at most one batched remote write. Any remote
        failure propagates and leaves the local maps untouched. Returns None
        when nobody is signed in.
        """
        with self._lock:
            user = self._user
            if user is None:
                return None
            status_snapshot = self._status_map
            override_snapshot = self._override_map
            self.syncing = True

        try:
            rows = self._call_remote(self.remote.fetch_overrides_for_owner, user.id)
            result = reconcile(
                user.id,
                status_snapshot,
                override_snapshot,
                rows,
                tie_policy=self.tie_policy,
                status_fallback=self.status_fallback,
            )
            if result.upserts:
                self._call_remote(self.remote.upsert_overrides, result.upserts)

            with self._lock:
                self._persist_status(_keep_local_changes(result.status_map, status_snapshot, self._status_map))
                self._persist_overrides(
                    _keep_local_changes(result.override_map, override_snapshot, self._override_map)
                )

            self.queue.mark_synced(list(rows) + result.upserts)
            self.last_sync_error = None
            logger.info(
                "Merged %d events for user %s: %d pushed, %d adopted",
                len(result.status_map), user.id, len(result.upserts), len(result.adopted),
            )
            return result
        finally:
            self.syncing = False

    def _call_remote(self, fn, *args):
        if self.remote_timeout is None:
            return fn(*args)
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(fn, *args)
            try:
                return future.result(timeout=self.remote_timeout)
            except FutureTimeoutError:
                # The call keeps running; a late upsert lands with the same
                # timestamps and resolves as a tie on the next merge.
                raise RemoteTimeoutError(
                    f"Remote call {getattr(fn, '__name__', fn)} timed out after {self.remote_timeout}s"
                ) from None
        finally:
            executor.shutdown(wait=False)

    # --- sign-in state machine ---------------------------------------------

    def handle_auth_change(self, auth: AuthState) -> None:
        """Drive DISCONNECTED/CONNECTED transitions from an auth notification."""
        if auth.loading:
            return
        if self.state == ConnectionState.connected and (
            auth.user is None or auth.user.id != self._user.id
        ):
            self.on_sign_out()
        if auth.user is not None and self.state == ConnectionState.disconnected:
            self.on_sign_in(auth.user)

    def on_sign_in(self, user: AuthUser) -> None:
        with self._lock:
            self._user = user
            self.state = ConnectionState.connected
        logger.info("User %s signed in; reconciling local state", user.id)
        try:
            self.merge_and_sync()
        except BlocosError as exc:
            self.last_sync_error = exc
            logger.exception("Reconciliation for user %s failed", user.id)

    def on_sign_out(self) -> None:
        with self._lock:
            previous = self._user
            self._user = None
            self.state = ConnectionState.disconnected
        self.queue.clear()
        logger.info("User %s signed out; local state kept", previous.id if previous else None)

    def attach(self, notifier: AuthNotifier) -> Callable[[], None]:
        """Follow ``notifier``; returns the unsubscribe function."""
        return notifier.subscribe(self.handle_auth_change)


def _keep_local_changes(merged: dict, snapshot: dict, current: dict) -> dict:
    """Overlay records written locally after ``snapshot`` was taken onto ``merged``."""
    result = dict(merged)
    for event_id, record in current.items():
        if snapshot.get(event_id) is not record:
            result[event_id] = record
    return result
