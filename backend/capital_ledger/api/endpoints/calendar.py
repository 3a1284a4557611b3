from datetime import date
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query

from capital_ledger.api.deps import get_ledger
from capital_ledger.schemas.capital_call import CalendarCapitalCall
from capital_ledger.services.ledger import CapitalLedger

router = APIRouter()


@router.get("/capital-calls", response_model=List[CalendarCapitalCall])
def calendar_capital_calls(
    start: date = Query(...),
    end: date = Query(...),
    ledger: CapitalLedger = Depends(get_ledger),
):
    """Capital calls called or due within the date range"""
    if end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    return ledger.get_calendar_capital_calls(start, end)
