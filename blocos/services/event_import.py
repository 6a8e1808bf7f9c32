"""CSV import of carnival blocos into events_base.

Rows are normalized (dd/mm date + "14h"/"9h30" time in the local carnival
timezone), then matched against the year's existing rows by
title|starts_at|location so re-imports update in place instead of
duplicating.
"""
import csv
import io
import logging
import re
import uuid
from datetime import datetime
from typing import Optional

import pytz
from sqlalchemy.orm import Session

from blocos.models.event import BaseEvent
from blocos.schemas.event import ImportSummary
from blocos.schemas.status import to_utc

logger = logging.getLogger(__name__)

COL_DATE = "DATA"
COL_TIME = "HORÁRIO"
COL_TITLE = "BLOCO"
COL_LOCATION = "LOCAL DA CONCETRAÇÃO"
COL_RITMOS = "RITMOS"
COL_AUDIENCE = "TAMANHO PÚBLICO"
COL_LGBT = "LGBT"

REQUIRED_COLUMNS = (COL_DATE, COL_TITLE, COL_LOCATION)

_DATE_RE = re.compile(r"^(\d{2})/(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2})h(\d{2})?$")


def validate_year(year) -> int:
    if not isinstance(year, int) or isinstance(year, bool) or not 2000 <= year <= 2100:
        raise ValueError(f"Invalid year: {year!r}")
    return year


def normalize_date(value: str, year: int) -> Optional[tuple[int, int, int]]:
    match = _DATE_RE.match(value.strip())
    if not match:
        return None
    day, month = int(match.group(1)), int(match.group(2))
    try:
        datetime(year, month, day)
    except ValueError:
        return None
    return year, month, day


def normalize_time(value: str) -> Optional[tuple[int, int]]:
    """Parse "14h" / "9h30"; "a divulgar" and anything unparseable mean no time."""
    trimmed = value.strip().lower()
    if not trimmed or trimmed == "a divulgar":
        return None
    match = _TIME_RE.match(trimmed)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if hours > 23 or minutes > 59:
        return None
    return hours, minutes


def _dedup_key(title: str, starts_at: datetime, location: str) -> str:
    return f"{title}|{to_utc(starts_at).isoformat()}|{location}"


def parse_rows(csv_text: str, year: int, tz_name: str = "America/Sao_Paulo") -> tuple[list[dict], int]:
    """Return (normalized events, ignored row count)."""
    tz = pytz.timezone(tz_name)
    reader = csv.DictReader(io.StringIO(csv_text))
    events: list[dict] = []
    ignored = 0

    for line_no, record in enumerate(reader, start=2):
        if not any((v or "").strip() for v in record.values() if isinstance(v, str)):
            continue
        if any(not (record.get(col) or "").strip() for col in REQUIRED_COLUMNS):
            logger.debug("Ignoring line %d: missing required columns", line_no)
            ignored += 1
            continue

        date_parts = normalize_date(record[COL_DATE], year)
        if date_parts is None:
            logger.debug("Ignoring line %d: bad date %r", line_no, record[COL_DATE])
            ignored += 1
            continue

        time_parts = normalize_time(record.get(COL_TIME) or "")
        hours, minutes = time_parts if time_parts else (0, 0)
        local_start = tz.localize(datetime(*date_parts, hours, minutes))

        events.append({
            "title": record[COL_TITLE].strip(),
            "starts_at": local_start.astimezone(pytz.utc),
            "ends_at": None,
            "all_day": time_parts is None,
            "location": record[COL_LOCATION].strip(),
            "ritmos": (record.get(COL_RITMOS) or "").strip(),
            "tamanho_publico": (record.get(COL_AUDIENCE) or "").strip(),
            "lgbt": (record.get(COL_LGBT) or "").strip(),
        })

    return events, ignored


def import_events(
    db: Session,
    csv_text: str,
    year: int,
    tz_name: str = "America/Sao_Paulo",
) -> ImportSummary:
    """Upsert the CSV's blocos for ``year`` into events_base."""
    validate_year(year)
    events, ignored = parse_rows(csv_text, year, tz_name)

    tz = pytz.timezone(tz_name)
    range_start = tz.localize(datetime(year, 1, 1)).astimezone(pytz.utc)
    range_end = tz.localize(datetime(year + 1, 1, 1)).astimezone(pytz.utc)

    existing = (
        db.query(BaseEvent)
        .filter(BaseEvent.starts_at >= range_start, BaseEvent.starts_at < range_end)
        .all()
    )
    by_key = {_dedup_key(e.title, e.starts_at, e.location or ""): e for e in existing}

    summary = ImportSummary(ignored=ignored)
    for data in events:
        key = _dedup_key(data["title"], data["starts_at"], data["location"])
        record = by_key.get(key)
        if record is None:
            record = BaseEvent(id=str(uuid.uuid4()), **data)
            db.add(record)
            by_key[key] = record
            summary.inserted += 1
        else:
            for field, value in data.items():
                setattr(record, field, value)
            summary.updated += 1

    db.commit()
    logger.info(
        "Import finished: %d inserted, %d updated, %d ignored",
        summary.inserted, summary.updated, summary.ignored,
    )
    return summary
