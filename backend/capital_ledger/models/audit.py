"""
Audit event database model, the backing table of the activity feed
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from capital_ledger.db.base import Base


class AuditEvent(Base):
    """Audit event model"""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)
    deal_id = Column(Integer, index=True)
    user_id = Column(Integer)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
