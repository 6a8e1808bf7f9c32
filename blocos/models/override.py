"""UserEventOverride ORM model — the hosted per-user override table."""
import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, UniqueConstraint
from blocos.database import Base


class UserEventOverride(Base):
    __tablename__ = "user_event_overrides"
    __table_args__ = (
        UniqueConstraint("owner_id", "base_event_id", name="uq_user_event_overrides_owner_event"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=False, index=True)
    base_event_id = Column(String(36), nullable=False)
    status = Column(String(20), nullable=True)
    hidden = Column(Boolean, nullable=True, default=False)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
