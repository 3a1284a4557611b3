from typing import List, Optional
from fastapi import APIRouter, Depends

from capital_ledger.api.deps import get_ledger
from capital_ledger.schemas.capital_call import (
    CapitalCall,
    Payment,
    PaymentCreate,
    PaymentResponse,
    StatusOverride,
)
from capital_ledger.services.ledger import CapitalLedger

router = APIRouter()


@router.get("/{call_id}", response_model=CapitalCall)
def get_capital_call(call_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.calls.get_call(call_id)


@router.get("/{call_id}/payments", response_model=List[Payment])
def list_payments(call_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.calls.list_payments(call_id)


@router.post("/{call_id}/payments", response_model=PaymentResponse)
def apply_payment(call_id: int, body: PaymentCreate, ledger: CapitalLedger = Depends(get_ledger)):
    """Apply a payment and return the updated call"""
    result = ledger.apply_payment(
        call_id,
        body.amount,
        body.payment_date,
        body.payment_type,
        body.user_id,
        body.notes,
    )
    return PaymentResponse(
        payment=Payment.model_validate(result.payment),
        updated_call=CapitalCall.model_validate(result.updated_call),
        commitment_status=result.commitment_status.value,
    )


@router.post("/{call_id}/status-override", response_model=CapitalCall)
def override_status(call_id: int, body: StatusOverride, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.calls.override_call_status(call_id, body.status, body.reason, body.user_id)


@router.post("/refresh-statuses")
def refresh_statuses(commitment_id: Optional[int] = None, ledger: CapitalLedger = Depends(get_ledger)):
    changed = ledger.calls.refresh_call_statuses(commitment_id)
    return {"updated_call_ids": changed}
