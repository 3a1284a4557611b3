"""
Commitment database model

One row per fund x deal allocation. `version` is the optimistic-concurrency
counter checked by SQLAlchemy on every UPDATE.
"""
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Text, ForeignKey,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from capital_ledger.db.base import Base


class Commitment(Base):
    """Commitment model"""

    __tablename__ = "commitments"

    id = Column(Integer, primary_key=True, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id"), nullable=False, index=True)
    deal_id = Column(Integer, ForeignKey("deals.id"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    amount_type = Column(String(20), nullable=False, default="dollar")  # percentage, dollar
    security_type = Column(String(50), default="equity")
    commitment_date = Column(Date)
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="committed")
    # committed, funded, partially_paid, unfunded, written_off
    portfolio_weight = Column(Numeric(9, 4), nullable=False, default=0)

    # Derived metrics, refreshed by MetricsCalculator
    market_value = Column(Numeric(18, 2), nullable=False, default=0)
    total_returned = Column(Numeric(18, 2), nullable=False, default=0)
    moic = Column(Numeric(12, 4), nullable=False, default=1)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    fund = relationship("Fund", back_populates="commitments")
    deal = relationship("Deal", back_populates="commitments")
    capital_calls = relationship(
        "CapitalCall", back_populates="commitment", order_by="CapitalCall.id",
        cascade="all, delete-orphan",
    )
    distributions = relationship(
        "Distribution", back_populates="commitment", cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("fund_id", "deal_id", name="uq_commitments_fund_deal"),
        CheckConstraint("amount > 0", name="ck_commitments_amount_positive"),
    )
    __mapper_args__ = {"version_id_col": version}
