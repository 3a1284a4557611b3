"""
Investment performance metrics

Per commitment: called, paid, distributions, MOIC.
Per fund: DPI, TVPI, net cash flow.
Portfolio weights: each active commitment's share of the fund's active
committed capital.
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional
import logging

from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.commitment import Commitment
from capital_ledger.schemas.metrics import (
    AllocationMetrics,
    CapitalCallSummary,
    FundMetrics,
    IntegrityReport,
)
from capital_ledger.services.amounts import HUNDRED, quantize_pct
from capital_ledger.services.status import (
    CallStatus,
    CommitmentStatus,
    derive_commitment_status,
    utc_today,
)

_log = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
RATIO_PLACES = Decimal("0.0001")


def _ratio(numerator: Decimal, denominator: Decimal, default: Decimal) -> Decimal:
    if denominator <= 0:
        return default
    return (numerator / denominator).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def _dec(value) -> Decimal:
    return Decimal(value or 0)


def calculate_portfolio_weights(commitments: Iterable[Commitment]) -> Dict[int, Decimal]:
    """
    Weight of each commitment in percent of the fund's active commitments.
    Written-off commitments weigh 0 and are left out of the denominator.
    """
    commitments = list(commitments)
    active = [c for c in commitments if c.status != CommitmentStatus.WRITTEN_OFF.value]
    denominator = sum((_dec(c.amount) for c in active), ZERO)

    weights = {}
    for c in commitments:
        if c.status == CommitmentStatus.WRITTEN_OFF.value or denominator <= 0:
            weights[c.id] = ZERO
        else:
            weights[c.id] = quantize_pct(_dec(c.amount) / denominator * HUNDRED)
    return weights


class MetricsCalculator:
    """Calculates and caches commitment and fund metrics"""

    def __init__(self, repo: LedgerRepository):
        self.repo = repo

    def calculate_allocation_metrics(self, commitment_id: int) -> AllocationMetrics:
        commitment = self.repo.require_commitment(commitment_id)
        calls = self.repo.list_calls(commitment_id)
        distributions = self.repo.list_distributions(commitment_id)

        current_value = _dec(commitment.market_value)
        total_distributions = sum((_dec(d.amount) for d in distributions), ZERO)
        total_called = sum((_dec(c.call_amount) for c in calls), ZERO)
        total_paid = sum((_dec(c.paid_amount) for c in calls), ZERO)

        return AllocationMetrics(
            total_invested=_dec(commitment.amount),
            current_value=current_value,
            distributions=total_distributions,
            total_called=total_called,
            total_paid=total_paid,
            moic=_ratio(current_value + total_distributions, total_paid, ONE),
            unrealized=current_value,
        )

    def calculate_fund_metrics(self, fund_id: int) -> FundMetrics:
        total_commitments = total_called = total_paid = ZERO
        total_distributions = total_current_value = ZERO

        for commitment in self.repo.list_commitments_by_fund(fund_id):
            metrics = self.calculate_allocation_metrics(commitment.id)
            total_commitments += metrics.total_invested
            total_called += metrics.total_called
            total_paid += metrics.total_paid
            total_distributions += metrics.distributions
            total_current_value += metrics.current_value

        total_value = total_current_value + total_distributions
        return FundMetrics(
            total_commitments=total_commitments,
            total_called=total_called,
            total_paid=total_paid,
            total_distributions=total_distributions,
            total_current_value=total_current_value,
            net_cash_flow=total_distributions - total_paid,
            moic=_ratio(total_value, total_paid, ONE),
            dpi=_ratio(total_distributions, total_paid, ZERO),
            tvpi=_ratio(total_value, total_paid, ZERO),
        )

    def calculate_capital_call_summary(
        self, commitment_id: int, as_of: Optional[date] = None
    ) -> CapitalCallSummary:
        as_of = as_of or utc_today()
        calls = self.repo.list_calls(commitment_id)

        pending = ZERO
        overdue = ZERO
        for call in calls:
            outstanding = max(_dec(call.call_amount) - _dec(call.paid_amount), ZERO)
            if call.status in (CallStatus.CALLED.value, CallStatus.PARTIAL.value):
                pending += outstanding
            if call.due_date < as_of and call.status != CallStatus.PAID.value:
                overdue += outstanding

        return CapitalCallSummary(
            total_calls=len(calls),
            total_amount=sum((_dec(c.call_amount) for c in calls), ZERO),
            paid_amount=sum((_dec(c.paid_amount) for c in calls), ZERO),
            pending_amount=pending,
            overdue_amount=overdue,
        )

    def update_allocation_metrics(self, commitment_id: int) -> AllocationMetrics:
        """Write derived metrics back onto the commitment row"""
        metrics = self.calculate_allocation_metrics(commitment_id)
        commitment = self.repo.require_commitment(commitment_id)
        commitment.total_returned = metrics.distributions
        commitment.market_value = metrics.current_value
        commitment.moic = metrics.moic
        self.repo.flush()
        _log.info(f"Updated metrics for commitment {commitment_id}: moic={metrics.moic}")
        return metrics

    def recalculate_fund_metrics(self, fund_id: int) -> int:
        with self.repo.atomic():
            commitments = self.repo.list_commitments_by_fund(fund_id)
            for commitment in commitments:
                self.update_allocation_metrics(commitment.id)
        _log.info(f"Recalculated metrics for {len(commitments)} commitments in fund {fund_id}")
        return len(commitments)

    def recalculate_portfolio_weights(self, fund_id: int) -> Dict[int, Decimal]:
        """Recompute and store weights for every commitment in the fund"""
        commitments = self.repo.list_commitments_by_fund(fund_id)
        weights = calculate_portfolio_weights(commitments)
        for commitment in commitments:
            if _dec(commitment.portfolio_weight) != weights[commitment.id]:
                commitment.portfolio_weight = weights[commitment.id]
        self.repo.flush()
        return weights

    def verify_commitment_integrity(self, commitment_id: int) -> IntegrityReport:
        """Report invariant violations without changing anything"""
        commitment = self.repo.require_commitment(commitment_id)
        calls = self.repo.list_calls(commitment_id)
        issues = []

        amount = _dec(commitment.amount)
        if amount <= 0:
            issues.append("Commitment amount is not positive")
        called = sum((_dec(c.call_amount) for c in calls), ZERO)
        if called > amount:
            issues.append(f"Capital calls total {called}, exceeding commitment {amount}")

        for call in calls:
            paid = _dec(call.paid_amount)
            if paid > _dec(call.call_amount):
                issues.append(f"Capital call {call.id} paid {paid} exceeds call amount {call.call_amount}")
            payments_total = self.repo.sum_payments(call.id)
            if payments_total != paid:
                issues.append(
                    f"Capital call {call.id} paid amount {paid} does not match payments {payments_total}"
                )

        total_paid = sum((_dec(c.paid_amount) for c in calls), ZERO)
        expected = derive_commitment_status(commitment.status, [c.status for c in calls], total_paid)
        if expected.value != commitment.status:
            issues.append(f"Status inconsistency: current {commitment.status!r}, should be {expected.value!r}")

        return IntegrityReport(commitment_id=commitment_id, is_valid=not issues, issues=issues)
