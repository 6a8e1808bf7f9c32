"""Pydantic schemas for base events."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class BaseEventOut(BaseModel):
    id: str
    title: str
    starts_at: datetime
    ends_at: Optional[datetime] = None
    all_day: bool
    location: Optional[str] = None
    description: Optional[str] = None
    ritmos: Optional[str] = None
    tamanho_publico: Optional[str] = None
    lgbt: Optional[str] = None

    model_config = {"from_attributes": True}


class ImportSummary(BaseModel):
    inserted: int = 0
    updated: int = 0
    ignored: int = 0
