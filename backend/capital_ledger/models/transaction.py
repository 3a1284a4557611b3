"""
Transaction database models (Capital Calls, Payments, Distributions)
"""
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Boolean, Text, ForeignKey,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from capital_ledger.db.base import Base


class CapitalCall(Base):
    """Capital Call model"""

    __tablename__ = "capital_calls"

    id = Column(Integer, primary_key=True, index=True)
    allocation_id = Column(Integer, ForeignKey("commitments.id"), nullable=False, index=True)
    call_amount = Column(Numeric(18, 2), nullable=False)
    amount_type = Column(String(20), nullable=False, default="dollar")  # percentage, dollar
    call_pct = Column(Numeric(9, 4), nullable=False)
    call_date = Column(Date, nullable=False, index=True)
    due_date = Column(Date, nullable=False, index=True)
    paid_amount = Column(Numeric(18, 2), nullable=False, default=0)
    paid_date = Column(Date)
    status = Column(String(20), nullable=False, default="scheduled", index=True)
    # scheduled, called, partial, paid, defaulted
    notes = Column(Text)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    commitment = relationship("Commitment", back_populates="capital_calls")
    payments = relationship(
        "CapitalCallPayment", back_populates="capital_call", order_by="CapitalCallPayment.id",
    )

    __table_args__ = (
        CheckConstraint("call_amount > 0", name="ck_capital_calls_amount_positive"),
        CheckConstraint("paid_amount >= 0", name="ck_capital_calls_paid_non_negative"),
    )
    __mapper_args__ = {"version_id_col": version}


class CapitalCallPayment(Base):
    """Append-only payment applied to a capital call"""

    __tablename__ = "capital_call_payments"

    id = Column(Integer, primary_key=True, index=True)
    capital_call_id = Column(Integer, ForeignKey("capital_calls.id"), nullable=False, index=True)
    payment_amount = Column(Numeric(18, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_type = Column(String(20), nullable=False, default="wire")  # wire, check, ach, other
    notes = Column(Text)
    created_by = Column(Integer)
    is_overpayment = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    capital_call = relationship("CapitalCall", back_populates="payments")

    __table_args__ = (
        CheckConstraint("payment_amount > 0", name="ck_capital_call_payments_amount_positive"),
    )


class Distribution(Base):
    """Distribution model"""

    __tablename__ = "distributions"

    id = Column(Integer, primary_key=True, index=True)
    allocation_id = Column(Integer, ForeignKey("commitments.id"), nullable=False, index=True)
    distribution_date = Column(Date, nullable=False, index=True)
    distribution_type = Column(String(100))  # return_of_capital, income, gain
    amount = Column(Numeric(18, 2), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    commitment = relationship("Commitment", back_populates="distributions")
