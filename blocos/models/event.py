"""BaseEvent ORM model — one imported carnival bloco."""
import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime
from blocos.database import Base


class BaseEvent(Base):
    __tablename__ = "events_base"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False, index=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    all_day = Column(Boolean, nullable=False, default=False)
    location = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    ritmos = Column(String(255), nullable=True)
    tamanho_publico = Column(String(100), nullable=True)
    lgbt = Column(String(50), nullable=True)
