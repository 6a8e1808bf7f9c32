"""Pydantic schemas for status/override records and override-table rows."""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, field_validator

from blocos.models.status import EventStatus

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Timestamped(BaseModel):
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def _normalize_updated_at(cls, value: datetime) -> datetime:
        return to_utc(value)


class StatusRecord(_Timestamped):
    status: EventStatus


class OverrideRecord(_Timestamped):
    hidden: Optional[bool] = None
    notes: Optional[str] = None


class GoingRoleRecord(_Timestamped):
    role: str


class OverrideRow(BaseModel):
    """One row of user_event_overrides, as exchanged with the remote store."""

    owner_id: str
    base_event_id: str
    status: Optional[EventStatus] = None
    hidden: Optional[bool] = None
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("updated_at")
    @classmethod
    def _normalize_updated_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None


class OverrideUpsertRequest(BaseModel):
    rows: list[OverrideRow]


class OverrideUpsertResult(BaseModel):
    upserted: int


StatusMap = dict[str, StatusRecord]
OverrideMap = dict[str, OverrideRecord]
GoingRoleMap = dict[str, GoingRoleRecord]
