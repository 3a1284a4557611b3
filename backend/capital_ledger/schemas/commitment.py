from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict

from capital_ledger.services.amounts import AmountType


class CommitmentCreate(BaseModel):
    fund_id: int
    deal_id: int
    amount: Decimal
    amount_type: AmountType = AmountType.DOLLAR
    security_type: str = "equity"
    commitment_date: Optional[date] = None
    notes: Optional[str] = None


class CommitmentAmountUpdate(BaseModel):
    amount: Decimal
    user_id: Optional[int] = None


class MarketValueUpdate(BaseModel):
    market_value: Decimal


class DistributionCreate(BaseModel):
    amount: Decimal
    distribution_date: date
    distribution_type: Optional[str] = None
    description: Optional[str] = None


class Commitment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    fund_id: int
    deal_id: int
    amount: Decimal
    amount_type: str
    security_type: Optional[str] = None
    commitment_date: Optional[date] = None
    notes: Optional[str] = None
    status: str
    portfolio_weight: Decimal
    market_value: Decimal
    total_returned: Decimal
    moic: Decimal
    created_at: Optional[datetime] = None
