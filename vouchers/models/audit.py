from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from ..db import Base


class AuditLog(Base):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_entity", "entity_type", "entity_id"),)

    id = Column(Integer, primary_key=True)
    at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    entity_type = Column(String(40), nullable=False)
    entity_id = Column(String(64), nullable=False)
    action = Column(String(40), nullable=False)
    actor_ref = Column(String(64), nullable=True)
    changes_json = Column(Text, nullable=True)
