"""Base event (bloco) read API."""
import logging
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from blocos.database import get_db
from blocos.models.event import BaseEvent
from blocos.schemas.event import BaseEventOut
from blocos.schemas.status import to_utc

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[BaseEventOut])
def list_events(
    start_after: Optional[datetime] = Query(None),
    start_before: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive match on title or location"),
    db: Session = Depends(get_db),
):
    """List blocos ordered by start time, with optional filters."""
    query = db.query(BaseEvent)
    if start_after:
        query = query.filter(BaseEvent.starts_at >= to_utc(start_after))
    if start_before:
        query = query.filter(BaseEvent.starts_at <= to_utc(start_before))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(BaseEvent.title.ilike(pattern) | BaseEvent.location.ilike(pattern))
    return query.order_by(BaseEvent.starts_at).all()


@router.get("/{event_id}", response_model=BaseEventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    """Fetch a single bloco by ID."""
    event = db.query(BaseEvent).filter(BaseEvent.id == event_id).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event
