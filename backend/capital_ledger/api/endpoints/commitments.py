from typing import List
from fastapi import APIRouter, Depends

from capital_ledger.api.deps import get_ledger
from capital_ledger.schemas.capital_call import (
    CallScheduleCreate,
    CapitalCall,
    CapitalCallBatchCreate,
)
from capital_ledger.schemas.commitment import (
    Commitment,
    CommitmentAmountUpdate,
    CommitmentCreate,
    DistributionCreate,
    MarketValueUpdate,
)
from capital_ledger.schemas.metrics import (
    AllocationMetrics,
    CapitalCallSummary,
    IntegrityReport,
)
from capital_ledger.services.ledger import CapitalLedger

router = APIRouter()


@router.post("/", response_model=Commitment)
def create_commitment(body: CommitmentCreate, ledger: CapitalLedger = Depends(get_ledger)):
    """Allocate capital from a fund to a deal"""
    return ledger.create_commitment(
        body.fund_id,
        body.deal_id,
        body.amount,
        amount_type=body.amount_type.value,
        security_type=body.security_type,
        commitment_date=body.commitment_date,
        notes=body.notes,
    )


@router.get("/{commitment_id}", response_model=Commitment)
def get_commitment(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.commitments.get_commitment(commitment_id)


@router.patch("/{commitment_id}/amount", response_model=Commitment)
def update_commitment_amount(
    commitment_id: int, body: CommitmentAmountUpdate, ledger: CapitalLedger = Depends(get_ledger)
):
    """Resize a commitment and rescale its capital calls"""
    return ledger.update_commitment_amount(commitment_id, body.amount, body.user_id)


@router.delete("/{commitment_id}")
def delete_commitment(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    ledger.delete_commitment(commitment_id)
    return {"message": "Commitment deleted successfully"}


@router.post("/{commitment_id}/write-off", response_model=Commitment)
def write_off_commitment(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.commitments.write_off_commitment(commitment_id)


@router.get("/{commitment_id}/capital-calls", response_model=List[CapitalCall])
def list_capital_calls(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.calls.list_calls(commitment_id)


@router.post("/{commitment_id}/capital-calls", response_model=List[CapitalCall])
def create_capital_calls(
    commitment_id: int, body: CapitalCallBatchCreate, ledger: CapitalLedger = Depends(get_ledger)
):
    """Create a draw-down schedule; the whole batch succeeds or fails together"""
    return ledger.create_capital_calls(commitment_id, body.calls)


@router.post("/{commitment_id}/capital-calls/schedule", response_model=List[CapitalCall])
def create_call_schedule(
    commitment_id: int, body: CallScheduleCreate, ledger: CapitalLedger = Depends(get_ledger)
):
    return ledger.create_call_schedule(
        commitment_id,
        body.first_call_date,
        body.frequency,
        body.call_count,
        call_pct=body.call_pct,
        dollar_total=body.dollar_total,
    )


@router.post("/{commitment_id}/distributions")
def record_distribution(
    commitment_id: int, body: DistributionCreate, ledger: CapitalLedger = Depends(get_ledger)
):
    distribution = ledger.commitments.record_distribution(
        commitment_id,
        body.amount,
        body.distribution_date,
        body.distribution_type,
        body.description,
    )
    return {"distribution_id": distribution.id, "amount": distribution.amount}


@router.put("/{commitment_id}/market-value", response_model=AllocationMetrics)
def update_market_value(
    commitment_id: int, body: MarketValueUpdate, ledger: CapitalLedger = Depends(get_ledger)
):
    return ledger.commitments.update_market_value(commitment_id, body.market_value)


@router.get("/{commitment_id}/statistics", response_model=AllocationMetrics)
def get_commitment_statistics(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.get_commitment_statistics(commitment_id)


@router.get("/{commitment_id}/call-summary", response_model=CapitalCallSummary)
def get_call_summary(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.get_call_summary(commitment_id)


@router.get("/{commitment_id}/integrity", response_model=IntegrityReport)
def verify_integrity(commitment_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.metrics.verify_commitment_integrity(commitment_id)
