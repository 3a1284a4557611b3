"""
Public operations of the capital ledger

Wires the ledger components around one session and exposes the operations
consumed by the API layer.
"""
from datetime import date
from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from capital_ledger.core.config import Settings, settings as default_settings
from capital_ledger.core.exceptions import NotFoundError
from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.transaction import CapitalCall
from capital_ledger.schemas.capital_call import CalendarCapitalCall, CapitalCallRequest
from capital_ledger.schemas.metrics import (
    AllocationMetrics,
    CapitalCallSummary,
    FundMetrics,
    PortfolioWeights,
)
from capital_ledger.services.allocation_sync import AllocationSyncService
from capital_ledger.services.audit import AuditSink, CeleryAuditSink
from capital_ledger.services.batch_query import BatchFetchResult, BatchQueryService
from capital_ledger.services.capital_call_ledger import CapitalCallLedger
from capital_ledger.services.commitment_store import CommitmentStore
from capital_ledger.services.directories import (
    DealDirectory,
    FundDirectory,
    SqlDealDirectory,
    SqlFundDirectory,
)
from capital_ledger.services.metrics_calculator import MetricsCalculator
from capital_ledger.services.payment_applicator import PaymentApplicator, PaymentResult
from capital_ledger.services.status import utc_today


class CapitalLedger:
    """Commitments, capital calls, payments and metrics over one session"""

    def __init__(
        self,
        db: Session,
        audit_sink: Optional[AuditSink] = None,
        funds: Optional[FundDirectory] = None,
        deals: Optional[DealDirectory] = None,
        config: Settings = default_settings,
        clock: Callable[[], date] = utc_today,
    ):
        self.repo = LedgerRepository(db)
        self.audit_sink = audit_sink or CeleryAuditSink()
        self.funds = funds or SqlFundDirectory(db)
        self.deals = deals or SqlDealDirectory(db)
        self.config = config

        self.calls = CapitalCallLedger(self.repo, self.funds, self.audit_sink, config, clock)
        self.metrics = MetricsCalculator(self.repo)
        self.sync = AllocationSyncService(
            self.repo, self.calls, self.metrics, self.audit_sink, config, clock
        )
        self.commitments = CommitmentStore(
            self.repo, self.funds, self.deals, self.sync, self.metrics, config
        )
        self.payments = PaymentApplicator(
            self.repo, self.calls, self.audit_sink, config, clock
        )
        self.batch = BatchQueryService(self.repo, self.funds, self.deals, config)

    # Commitments

    def create_commitment(self, fund_id: int, deal_id: int, amount: Any, **kwargs) -> Commitment:
        return self.commitments.create_commitment(fund_id, deal_id, amount, **kwargs)

    def update_commitment_amount(
        self, commitment_id: int, new_amount: Any, user_id: Optional[int] = None
    ) -> Commitment:
        return self.commitments.update_commitment_amount(commitment_id, new_amount, user_id)

    def delete_commitment(self, commitment_id: int) -> bool:
        return self.commitments.delete_commitment(commitment_id)

    # Capital calls

    def create_capital_calls(
        self, commitment_id: int, calls: List[CapitalCallRequest]
    ) -> List[CapitalCall]:
        return self.calls.create_capital_calls(commitment_id, calls)

    def create_call_schedule(
        self, commitment_id: int, first_call_date: date, frequency: str, call_count: int,
        call_pct: Any = None, dollar_total: Any = None,
    ) -> List[CapitalCall]:
        commitment = self.repo.require_commitment(commitment_id)
        requests = self.calls.build_call_schedule(
            commitment, first_call_date, frequency, call_count, call_pct, dollar_total
        )
        return self.calls.create_capital_calls(commitment_id, requests)

    def apply_payment(
        self, call_id: int, amount: Any, payment_date: date, payment_type: str = "wire",
        user_id: Optional[int] = None, notes: Optional[str] = None,
    ) -> PaymentResult:
        return self.payments.apply_payment(call_id, amount, payment_date, payment_type, user_id, notes)

    # Statistics

    def get_commitment_statistics(self, commitment_id: int) -> AllocationMetrics:
        return self.metrics.calculate_allocation_metrics(commitment_id)

    def get_call_summary(self, commitment_id: int) -> CapitalCallSummary:
        self.repo.require_commitment(commitment_id)
        return self.metrics.calculate_capital_call_summary(commitment_id, self.calls.clock())

    def get_fund_statistics(self, fund_id: int) -> FundMetrics:
        if self.funds.get_fund(fund_id) is None:
            raise NotFoundError("Fund", fund_id)
        return self.metrics.calculate_fund_metrics(fund_id)

    def get_portfolio_weights(self, fund_id: int) -> PortfolioWeights:
        if self.funds.get_fund(fund_id) is None:
            raise NotFoundError("Fund", fund_id)
        commitments = self.repo.list_commitments_by_fund(fund_id)
        return PortfolioWeights(
            fund_id=fund_id,
            weights={c.id: c.portfolio_weight for c in commitments},
        )

    # Read views

    def batch_fetch(self, allocation_ids: Sequence[int]) -> BatchFetchResult:
        return self.batch.batch_fetch(allocation_ids)

    def get_calendar_capital_calls(self, start: date, end: date) -> List[CalendarCapitalCall]:
        return self.batch.get_calendar_capital_calls(start, end)
