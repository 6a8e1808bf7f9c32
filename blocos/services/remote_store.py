"""Remote store adapter over the user_event_overrides table.

Exposes the two operations the reconciliation engine needs: fetch every row
owned by a user, and bulk-upsert rows keyed by (owner_id, base_event_id).
Failures surface as RemoteStoreError; nothing here retries.
"""
import logging
from typing import Callable, Iterable, Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blocos.errors import RemoteStoreError
from blocos.models.override import UserEventOverride
from blocos.models.status import EventStatus
from blocos.schemas.status import OverrideRow

logger = logging.getLogger(__name__)

_KNOWN_STATUSES = {s.value for s in EventStatus}


class RemoteStore(Protocol):
    def fetch_overrides_for_owner(self, owner_id: str) -> list[OverrideRow]: ...

    def upsert_overrides(self, rows: list[OverrideRow]) -> None: ...


def fetch_override_rows(db: Session, owner_id: str) -> list[OverrideRow]:
    """Return every override row owned by ``owner_id``.

    A stored status outside EventStatus (e.g. a legacy "talvez") is logged and
    read as a status-less row.
    """
    records = db.query(UserEventOverride).filter(UserEventOverride.owner_id == owner_id).all()
    rows = []
    for record in records:
        status = record.status
        if status is not None and status not in _KNOWN_STATUSES:
            logger.warning(
                "Ignoring unknown status %r on override %s/%s", status, owner_id, record.base_event_id,
            )
            status = None
        rows.append(OverrideRow(
            owner_id=record.owner_id,
            base_event_id=record.base_event_id,
            status=status,
            hidden=record.hidden,
            notes=record.notes,
            updated_at=record.updated_at,
        ))
    return rows


def upsert_override_rows(db: Session, rows: Iterable[OverrideRow]) -> int:
    """Insert or fully replace rows keyed by (owner_id, base_event_id), in one commit."""
    by_key: dict[tuple[str, str], OverrideRow] = {}
    for row in rows:
        by_key[(row.owner_id, row.base_event_id)] = row

    for (owner_id, base_event_id), row in by_key.items():
        record = (
            db.query(UserEventOverride)
            .filter(
                UserEventOverride.owner_id == owner_id,
                UserEventOverride.base_event_id == base_event_id,
            )
            .first()
        )
        if record is None:
            record = UserEventOverride(owner_id=owner_id, base_event_id=base_event_id)
            db.add(record)
        record.status = row.status.value if row.status else None
        record.hidden = row.hidden
        record.notes = row.notes
        record.updated_at = row.updated_at

    db.commit()
    return len(by_key)


class SqlRemoteStore:
    """RemoteStore backed by a SQLAlchemy session factory; one session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def fetch_overrides_for_owner(self, owner_id: str) -> list[OverrideRow]:
        db = self.session_factory()
        try:
            return fetch_override_rows(db, owner_id)
        except (SQLAlchemyError, ValidationError) as exc:
            raise RemoteStoreError(f"Failed to fetch overrides for {owner_id}: {exc}") from exc
        finally:
            db.close()

    def upsert_overrides(self, rows: list[OverrideRow]) -> None:
        if not rows:
            return
        db = self.session_factory()
        try:
            count = upsert_override_rows(db, rows)
            logger.debug("Upserted %d override rows", count)
        except SQLAlchemyError as exc:
            db.rollback()
            raise RemoteStoreError(f"Failed to upsert {len(rows)} override rows: {exc}") from exc
        finally:
            db.close()
