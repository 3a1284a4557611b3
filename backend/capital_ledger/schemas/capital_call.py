from datetime import date
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from capital_ledger.services.amounts import AmountType


class CapitalCallRequest(BaseModel):
    """One call in a draw-down schedule, as a percentage or a dollar amount"""

    amount_type: AmountType
    amount: Decimal
    call_date: date
    due_date: date
    notes: Optional[str] = None


class CapitalCallBatchCreate(BaseModel):
    calls: List[CapitalCallRequest]


class CallScheduleCreate(BaseModel):
    """Evenly spaced schedule generated from a first call date"""

    first_call_date: date
    frequency: str = "quarterly"  # single, monthly, quarterly, biannual, annual
    call_count: int = 1
    call_pct: Optional[Decimal] = None
    dollar_total: Optional[Decimal] = None


class PaymentCreate(BaseModel):
    amount: Decimal
    payment_date: date
    payment_type: str = "wire"
    user_id: Optional[int] = None
    notes: Optional[str] = None


class StatusOverride(BaseModel):
    status: str
    reason: str
    user_id: Optional[int] = None


class CapitalCall(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    allocation_id: int
    call_amount: Decimal
    amount_type: str
    call_pct: Decimal
    call_date: date
    due_date: date
    paid_amount: Decimal
    paid_date: Optional[date] = None
    status: str
    notes: Optional[str] = None


class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    capital_call_id: int
    payment_amount: Decimal
    payment_date: date
    payment_type: str
    notes: Optional[str] = None
    created_by: Optional[int] = None
    is_overpayment: bool


class PaymentResponse(BaseModel):
    payment: Payment
    updated_call: CapitalCall
    commitment_status: str


class CalendarCapitalCall(CapitalCall):
    fund_id: Optional[int] = None
    deal_id: Optional[int] = None
    fund_name: str
    deal_name: str
    allocation_amount: Decimal
