"""Hosted user_event_overrides table: per-owner select and keyed bulk upsert."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blocos.database import get_db
from blocos.schemas.status import OverrideRow, OverrideUpsertRequest, OverrideUpsertResult
from blocos.services.remote_store import fetch_override_rows, upsert_override_rows

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[OverrideRow])
def list_overrides(owner_id: str = Query(..., description="Owner whose rows to return"), db: Session = Depends(get_db)):
    """Return every override row owned by ``owner_id``."""
    try:
        return fetch_override_rows(db, owner_id)
    except (SQLAlchemyError, ValidationError):
        logger.exception("Failed to fetch overrides for %s", owner_id)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Override store unavailable")


@router.post("/upsert", response_model=OverrideUpsertResult)
def upsert_overrides(payload: OverrideUpsertRequest, db: Session = Depends(get_db)):
    """Insert or replace rows keyed by (owner_id, base_event_id)."""
    try:
        count = upsert_override_rows(db, payload.rows)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to upsert %d override rows", len(payload.rows))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Override store unavailable")
    logger.info("Upserted %d override rows", count)
    return OverrideUpsertResult(upserted=count)
