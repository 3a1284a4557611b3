"""
Deal database model
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from capital_ledger.db.base import Base


class Deal(Base):
    """Deal model"""

    __tablename__ = "deals"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    stage = Column(String(50), nullable=False, default="sourcing")  # sourcing, ..., closing, invested
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    commitments = relationship("Commitment", back_populates="deal")
    closing_events = relationship("ClosingScheduleEvent", back_populates="deal")
