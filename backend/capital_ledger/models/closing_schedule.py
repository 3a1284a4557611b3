"""
Closing schedule database model
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from capital_ledger.db.base import Base


class ClosingScheduleEvent(Base):
    """Closing milestone (first close, final close, ...) on a deal"""

    __tablename__ = "closing_schedule_events"

    id = Column(Integer, primary_key=True, index=True)
    deal_id = Column(Integer, ForeignKey("deals.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # first_close, second_close, final_close, custom
    event_name = Column(String(255))
    scheduled_date = Column(Date)
    actual_date = Column(Date)
    amount_type = Column(String(20), nullable=False, default="dollar")
    target_amount = Column(Numeric(18, 2))
    actual_amount = Column(Numeric(18, 2))
    status = Column(String(20), nullable=False, default="scheduled")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    deal = relationship("Deal", back_populates="closing_events")
