from decimal import Decimal
from typing import Dict, List
from pydantic import BaseModel


class AllocationMetrics(BaseModel):
    total_invested: Decimal
    current_value: Decimal
    distributions: Decimal
    total_called: Decimal
    total_paid: Decimal
    moic: Decimal
    unrealized: Decimal


class FundMetrics(BaseModel):
    total_commitments: Decimal
    total_called: Decimal
    total_paid: Decimal
    total_distributions: Decimal
    total_current_value: Decimal
    net_cash_flow: Decimal
    moic: Decimal
    dpi: Decimal
    tvpi: Decimal


class CapitalCallSummary(BaseModel):
    total_calls: int
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    overdue_amount: Decimal


class PortfolioWeights(BaseModel):
    fund_id: int
    weights: Dict[int, Decimal]


class IntegrityReport(BaseModel):
    commitment_id: int
    is_valid: bool
    issues: List[str]
