"""
Commitment store

Creates, resizes, retires and deletes fund x deal commitments and keeps
fund-level aggregates (portfolio weights, AUM) in step with them.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Optional
import logging

from capital_ledger.core.config import Settings, settings as default_settings
from capital_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.transaction import Distribution
from capital_ledger.schemas.metrics import AllocationMetrics
from capital_ledger.schemas.sync import SyncResult
from capital_ledger.services.allocation_sync import AllocationSyncService
from capital_ledger.services.amounts import AmountType, quantize_money, to_decimal
from capital_ledger.services.directories import DealDirectory, FundDirectory
from capital_ledger.services.metrics_calculator import MetricsCalculator
from capital_ledger.services.status import CallStatus, CommitmentStatus

_log = logging.getLogger(__name__)


class CommitmentStore:
    """Lifecycle of commitments"""

    def __init__(
        self,
        repo: LedgerRepository,
        funds: FundDirectory,
        deals: DealDirectory,
        sync: AllocationSyncService,
        metrics: MetricsCalculator,
        config: Settings = default_settings,
    ):
        self.repo = repo
        self.funds = funds
        self.deals = deals
        self.sync = sync
        self.metrics = metrics
        self.config = config

    def _validate_amount(self, amount: Any) -> Decimal:
        value = quantize_money(to_decimal(amount))
        if value <= 0:
            raise ValidationError("Commitment amount must be greater than 0")
        if value < self.config.MIN_COMMITMENT:
            raise ValidationError(f"Commitment amount must be at least ${self.config.MIN_COMMITMENT:,}")
        if value > self.config.MAX_COMMITMENT:
            raise ValidationError(f"Commitment amount cannot exceed ${self.config.MAX_COMMITMENT:,}")
        return value

    def get_commitment(self, commitment_id: int) -> Commitment:
        return self.repo.require_commitment(commitment_id)

    def create_commitment(
        self,
        fund_id: int,
        deal_id: int,
        amount: Any,
        amount_type: str = AmountType.DOLLAR.value,
        security_type: str = "equity",
        commitment_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Commitment:
        """
        Allocate capital from a fund to a deal.

        The new commitment starts `committed` with zero market value and a
        MOIC of 1; weights of every commitment in the fund are refreshed.
        """
        value = self._validate_amount(amount)
        try:
            kind = AmountType(amount_type)
        except ValueError as e:
            raise ValidationError(f"Unknown amount type {amount_type!r}") from e

        with self.repo.atomic():
            if self.funds.get_fund(fund_id) is None:
                raise NotFoundError("Fund", fund_id)
            if self.deals.get_deal(deal_id) is None:
                raise NotFoundError("Deal", deal_id)
            if self.repo.find_commitment(fund_id, deal_id) is not None:
                raise ConflictError(f"Fund {fund_id} already has a commitment to deal {deal_id}")

            commitment = self.repo.add(Commitment(
                fund_id=fund_id,
                deal_id=deal_id,
                amount=value,
                amount_type=kind.value,
                security_type=security_type,
                commitment_date=commitment_date,
                notes=notes,
                status=CommitmentStatus.COMMITTED.value,
                portfolio_weight=Decimal("0"),
                market_value=Decimal("0"),
                total_returned=Decimal("0"),
                moic=Decimal("1"),
            ))
            self.metrics.recalculate_portfolio_weights(fund_id)
            self.funds.update_fund_aum(fund_id)
            self.deals.on_commitment_created(deal_id)

        _log.info(f"Created commitment {commitment.id}: fund {fund_id} -> deal {deal_id} for {value}")
        return commitment

    def update_commitment_amount(
        self, commitment_id: int, new_amount: Any, user_id: Optional[int] = None
    ) -> Commitment:
        """
        Resize a commitment. Dependent calls and closing targets are rescaled
        in the same unit of work as the amount change.
        """
        value = self._validate_amount(new_amount)

        commitment = self.repo.require_commitment(commitment_id)
        if commitment.status == CommitmentStatus.WRITTEN_OFF.value:
            raise ConflictError(f"Commitment {commitment_id} is written off")
        result: SyncResult = self.sync.sync_commitment_update(
            commitment_id, Decimal(commitment.amount), value, user_id
        )

        with self.repo.atomic():
            self.funds.update_fund_aum(commitment.fund_id)

        _log.info(
            f"Commitment {commitment_id} amount {result.old_amount} -> {result.new_amount}, "
            f"{len(result.updated_call_ids)} calls rescaled"
        )
        return commitment

    def delete_commitment(self, commitment_id: int) -> bool:
        """
        Delete a commitment that has only scheduled calls.

        Commitments with activity must be written off instead.
        """
        with self.repo.atomic():
            commitment = self.repo.require_commitment(commitment_id, for_update=True)
            calls = self.repo.list_calls(commitment_id)
            for call in calls:
                # a call past its call date is active even before the status sweep
                self.sync.ledger.recompute_call_status(call)
            active = [c.id for c in calls if c.status != CallStatus.SCHEDULED.value]
            if active:
                raise ConflictError(
                    f"Commitment {commitment_id} has active capital calls {active}; write it off instead"
                )

            fund_id, deal_id = commitment.fund_id, commitment.deal_id
            self.repo.delete(commitment)
            self.metrics.recalculate_portfolio_weights(fund_id)
            self.funds.update_fund_aum(fund_id)

            remaining = [
                c for c in self.repo.list_commitments_by_deal(deal_id)
                if c.status != CommitmentStatus.WRITTEN_OFF.value
            ]
            if not remaining:
                self.deals.on_last_commitment_removed(deal_id)

        _log.info(f"Deleted commitment {commitment_id} ({len(calls)} scheduled calls removed)")
        return True

    def write_off_commitment(self, commitment_id: int) -> Commitment:
        """Soft-retire a commitment; it keeps its history but leaves the weight denominator"""
        with self.repo.atomic():
            commitment = self.repo.require_commitment(commitment_id, for_update=True)
            if commitment.status == CommitmentStatus.WRITTEN_OFF.value:
                return commitment
            commitment.status = CommitmentStatus.WRITTEN_OFF.value
            self.repo.flush()
            self.metrics.recalculate_portfolio_weights(commitment.fund_id)
            self.funds.update_fund_aum(commitment.fund_id)

            remaining = [
                c for c in self.repo.list_commitments_by_deal(commitment.deal_id)
                if c.status != CommitmentStatus.WRITTEN_OFF.value
            ]
            if not remaining:
                self.deals.on_last_commitment_removed(commitment.deal_id)

        _log.info(f"Commitment {commitment_id} written off")
        return commitment

    def record_distribution(
        self,
        commitment_id: int,
        amount: Any,
        distribution_date: date,
        distribution_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Distribution:
        value = quantize_money(to_decimal(amount))
        if value <= 0:
            raise ValidationError("Distribution amount must be greater than 0")

        with self.repo.atomic():
            self.repo.require_commitment(commitment_id, for_update=True)
            distribution = self.repo.add(Distribution(
                allocation_id=commitment_id,
                amount=value,
                distribution_date=distribution_date,
                distribution_type=distribution_type,
                description=description,
            ))
            self.metrics.update_allocation_metrics(commitment_id)

        _log.info(f"Recorded distribution of {value} on commitment {commitment_id}")
        return distribution

    def update_market_value(self, commitment_id: int, market_value: Any) -> AllocationMetrics:
        value = quantize_money(to_decimal(market_value, "market value"))
        if value < 0:
            raise ValidationError("Market value cannot be negative")

        with self.repo.atomic():
            commitment = self.repo.require_commitment(commitment_id, for_update=True)
            commitment.market_value = value
            self.repo.flush()
            metrics = self.metrics.update_allocation_metrics(commitment_id)
        return metrics
