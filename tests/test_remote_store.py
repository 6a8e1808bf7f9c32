"""Tests for the SQLAlchemy-backed remote store adapter."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from blocos.errors import RemoteStoreError
from blocos.models.override import UserEventOverride
from blocos.models.status import EventStatus
from blocos.schemas.status import OverrideRow, StatusRecord
from blocos.services import remote_store
from blocos.services.auth import AuthNotifier, AuthUser
from blocos.services.remote_store import SqlRemoteStore
from blocos.services.sync_service import ConnectionState, SyncSession
from blocos.storage.local_store import LocalStore, MemoryStorage

T1 = datetime(2026, 2, 14, 10, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(hours=1)


@pytest.fixture
def sql_remote(session_factory):
    return SqlRemoteStore(session_factory)


class TestSqlRemoteStore:

    def test_fetch_only_returns_owner_rows(self, sql_remote):
        sql_remote.upsert_overrides([
            OverrideRow(owner_id="a", base_event_id="ev-1", status="going", updated_at=T1),
            OverrideRow(owner_id="b", base_event_id="ev-1", status="maybe", updated_at=T1),
        ])
        rows = sql_remote.fetch_overrides_for_owner("a")
        assert len(rows) == 1
        assert rows[0].status == EventStatus.going
        assert rows[0].updated_at == T1

    def test_upsert_replaces_by_owner_and_event(self, sql_remote, db):
        sql_remote.upsert_overrides([
            OverrideRow(owner_id="a", base_event_id="ev-1", status="going", hidden=True, notes="x", updated_at=T1),
        ])
        sql_remote.upsert_overrides([
            OverrideRow(owner_id="a", base_event_id="ev-1", status="sure", updated_at=T2),
        ])
        records = db.query(UserEventOverride).filter(UserEventOverride.owner_id == "a").all()
        assert len(records) == 1
        assert records[0].status == "sure"
        assert records[0].hidden is None
        assert records[0].notes is None

    def test_duplicate_keys_in_one_batch_last_wins(self, sql_remote):
        sql_remote.upsert_overrides([
            OverrideRow(owner_id="a", base_event_id="ev-1", status="going", updated_at=T1),
            OverrideRow(owner_id="a", base_event_id="ev-1", status="maybe", updated_at=T2),
        ])
        (row,) = sql_remote.fetch_overrides_for_owner("a")
        assert row.status == EventStatus.maybe

    def test_null_status_and_timestamp(self, sql_remote):
        sql_remote.upsert_overrides([OverrideRow(owner_id="a", base_event_id="ev-1", notes="só nota")])
        (row,) = sql_remote.fetch_overrides_for_owner("a")
        assert row.status is None
        assert row.updated_at is None

    def test_empty_upsert_is_noop(self, sql_remote):
        sql_remote.upsert_overrides([])
        assert sql_remote.fetch_overrides_for_owner("a") == []

    def test_database_errors_become_remote_store_errors(self, db_engine, sql_remote):
        UserEventOverride.__table__.drop(db_engine)
        with pytest.raises(RemoteStoreError):
            sql_remote.fetch_overrides_for_owner("a")
        with pytest.raises(RemoteStoreError) as exc_info:
            sql_remote.upsert_overrides([OverrideRow(owner_id="a", base_event_id="ev-1", updated_at=T1)])
        assert isinstance(exc_info.value.__cause__, OperationalError)
        UserEventOverride.__table__.create(db_engine)

    def test_unknown_status_reads_as_status_less_row(self, sql_remote, db):
        db.add(UserEventOverride(owner_id="a", base_event_id="ev-1", status="talvez", notes="legado", updated_at=T1))
        db.commit()
        (row,) = sql_remote.fetch_overrides_for_owner("a")
        assert row.status is None
        assert row.notes == "legado"
        assert row.updated_at == T1

    def test_malformed_rows_become_remote_store_errors(self, sql_remote, monkeypatch):
        def _malformed(db, owner_id):
            return [OverrideRow.model_validate({"owner_id": owner_id})]

        monkeypatch.setattr(remote_store, "fetch_override_rows", _malformed)
        with pytest.raises(RemoteStoreError) as exc_info:
            sql_remote.fetch_overrides_for_owner("a")
        assert isinstance(exc_info.value.__cause__, ValidationError)


class TestSessionAgainstDatabase:
    """Two devices of the same user converge through the database."""

    def test_two_devices_converge(self, sql_remote):
        phone_store = LocalStore(MemoryStorage())
        phone_store.save_status_map({"ev-1": StatusRecord(status=EventStatus.sure, updated_at=T1)})
        phone = SyncSession(phone_store, sql_remote)
        laptop = SyncSession(LocalStore(MemoryStorage()), sql_remote)

        phone.on_sign_in(AuthUser(id="u"))
        laptop.on_sign_in(AuthUser(id="u"))
        assert laptop.get_status("ev-1") == EventStatus.sure

        laptop.set_status("ev-1", EventStatus.going)
        laptop.queue.drain()
        phone.on_sign_out()
        phone.on_sign_in(AuthUser(id="u"))
        assert phone.get_status("ev-1") == EventStatus.going

    def test_legacy_status_row_does_not_break_sign_in(self, sql_remote, db):
        db.add(UserEventOverride(owner_id="u1", base_event_id="ev-1", status="talvez", hidden=True, updated_at=T1))
        db.commit()
        session = SyncSession(LocalStore(MemoryStorage()), sql_remote)
        notifier = AuthNotifier()
        session.attach(notifier)
        seen = []
        notifier.subscribe(seen.append)

        notifier.sign_in("u1")

        assert session.state == ConnectionState.connected
        assert session.last_sync_error is None
        assert session.get_status("ev-1") is None
        assert session.get_override("ev-1").hidden is True
        assert [state.user.id for state in seen if state.user] == ["u1"]

    def test_malformed_row_is_recorded_as_sync_error(self, sql_remote, monkeypatch):
        def _malformed(db, owner_id):
            return [OverrideRow.model_validate({"owner_id": owner_id, "base_event_id": "ev-1", "hidden": "sim?"})]

        monkeypatch.setattr(remote_store, "fetch_override_rows", _malformed)
        session = SyncSession(LocalStore(MemoryStorage()), sql_remote)
        notifier = AuthNotifier()
        session.attach(notifier)

        notifier.sign_in("u1")

        assert session.state == ConnectionState.connected
        assert isinstance(session.last_sync_error, RemoteStoreError)
