from fastapi import APIRouter, Depends

from capital_ledger.api.deps import get_ledger
from capital_ledger.schemas.metrics import FundMetrics, PortfolioWeights
from capital_ledger.services.ledger import CapitalLedger

router = APIRouter()


@router.get("/{fund_id}/statistics", response_model=FundMetrics)
def get_fund_statistics(fund_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    """DPI, TVPI, MOIC and cash flow across the fund's commitments"""
    return ledger.get_fund_statistics(fund_id)


@router.get("/{fund_id}/portfolio-weights", response_model=PortfolioWeights)
def get_portfolio_weights(fund_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    return ledger.get_portfolio_weights(fund_id)


@router.post("/{fund_id}/recalculate")
def recalculate_fund_metrics(fund_id: int, ledger: CapitalLedger = Depends(get_ledger)):
    count = ledger.metrics.recalculate_fund_metrics(fund_id)
    return {"fund_id": fund_id, "commitments_updated": count}
