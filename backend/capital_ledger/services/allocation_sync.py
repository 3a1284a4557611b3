"""
Proportional sync engine

When a commitment's amount changes after calls exist, every dollar
denominated call and every dollar closing-schedule target on the deal is
scaled by new/old, and percentage calls are re-expressed against the new
amount. The commitment amount and all dependent rows change in one unit of
work; the audit event is published only after it commits.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Callable, List, Optional, Tuple
import logging

from capital_ledger.core.config import Settings, settings as default_settings
from capital_ledger.core.exceptions import (
    ConflictError,
    LedgerError,
    SyncError,
    ValidationError,
)
from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.transaction import CapitalCall
from capital_ledger.schemas.audit import AuditEventIn
from capital_ledger.schemas.sync import SyncResult
from capital_ledger.services.amounts import (
    AmountType,
    allocate_percentages,
    quantize_pct,
    round_dollars,
    to_decimal,
    HUNDRED,
)
from capital_ledger.services.audit import AuditSink
from capital_ledger.services.capital_call_ledger import CapitalCallLedger
from capital_ledger.services.metrics_calculator import MetricsCalculator
from capital_ledger.services.status import utc_today

_log = logging.getLogger(__name__)


class AllocationSyncService:
    """Keeps calls and closing targets proportional to their commitment"""

    def __init__(
        self,
        repo: LedgerRepository,
        ledger: CapitalCallLedger,
        metrics: MetricsCalculator,
        audit_sink: AuditSink,
        config: Settings = default_settings,
        clock: Callable[[], date] = utc_today,
    ):
        self.repo = repo
        self.ledger = ledger
        self.metrics = metrics
        self.audit_sink = audit_sink
        self.config = config
        self.clock = clock

    def sync_commitment_update(
        self,
        commitment_id: int,
        old_amount: Any,
        new_amount: Any,
        user_id: Optional[int] = None,
    ) -> SyncResult:
        """
        Rescale a commitment and everything that depends on its amount.

        Args:
            commitment_id: commitment being resized
            old_amount: amount the dependent rows were sized against
            new_amount: new commitment amount
            user_id: acting user, for the audit event

        Returns:
            SyncResult listing every call and closing event that was updated

        Raises:
            ValidationError: non-positive amounts, or a rescale that breaks a call invariant
            ConflictError: the commitment amount is neither old_amount nor new_amount
            SyncError: a row failed to update; nothing was persisted
        """
        with self.repo.atomic():
            commitment = self.repo.require_commitment(commitment_id, for_update=True)
            result = self.rescale(commitment, old_amount, new_amount)
            if result.changed:
                self.metrics.recalculate_portfolio_weights(commitment.fund_id)

        self.publish(result, user_id)
        return result

    def rescale(self, commitment: Commitment, old_amount: Any, new_amount: Any) -> SyncResult:
        """Apply the rescale inside the caller's unit of work"""
        old_amount = to_decimal(old_amount, "old amount")
        new_amount = to_decimal(new_amount, "new amount")
        if old_amount <= 0:
            raise ValidationError("Cannot rescale from a non-positive commitment amount")
        if new_amount <= 0:
            raise ValidationError("Commitment amount must be greater than 0")

        current = Decimal(commitment.amount)
        if current not in (old_amount, new_amount):
            raise ConflictError(
                f"Commitment {commitment.id} amount is {current}, expected {old_amount}; reload and retry"
            )

        ratio = new_amount / old_amount
        result = SyncResult(
            commitment_id=commitment.id,
            deal_id=commitment.deal_id,
            old_amount=old_amount,
            new_amount=new_amount,
            ratio=ratio,
        )
        if not result.changed:
            return result

        calls = self.repo.list_calls(commitment.id, for_update=True)
        planned_calls = self._plan_calls(calls, ratio, new_amount)
        events = [
            e for e in self.repo.list_closing_events_by_deal(commitment.deal_id, for_update=True)
            if e.amount_type == AmountType.DOLLAR.value and e.target_amount is not None
        ]

        as_of = self.clock()
        try:
            commitment.amount = new_amount
            self.repo.flush()
            for call, new_call_amount, new_pct in planned_calls:
                call.call_amount = new_call_amount
                call.call_pct = new_pct
                self.ledger.recompute_call_status(call, as_of, override_terminal=True)
                self.repo.flush()
                result.updated_call_ids.append(call.id)
            for event in events:
                event.target_amount = round_dollars(Decimal(event.target_amount) * ratio)
                self.repo.flush()
                result.updated_event_ids.append(event.id)
            self.ledger.recompute_commitment_status(commitment)
        except LedgerError:
            raise
        except Exception as e:
            _log.error(
                f"Rescale of commitment {commitment.id} aborted; rolled back after calls "
                f"{result.updated_call_ids} and closing events {result.updated_event_ids}: {e}",
                exc_info=True,
            )
            raise SyncError(
                f"Rescale of commitment {commitment.id} failed; retry the whole update",
                completed_call_ids=result.updated_call_ids,
                completed_event_ids=result.updated_event_ids,
            ) from e

        _log.info(
            f"Commitment {commitment.id} rescaled {old_amount} -> {new_amount} (ratio {ratio}): "
            f"{len(result.updated_call_ids)} calls, {len(result.updated_event_ids)} closing events"
        )
        return result

    def _plan_calls(
        self, calls: List[CapitalCall], ratio: Decimal, new_amount: Decimal
    ) -> List[Tuple[CapitalCall, Decimal, Decimal]]:
        """Compute new amounts for every call and check them before anything is written"""
        pct_amounts = iter(allocate_percentages(
            [Decimal(c.call_pct) for c in calls if c.amount_type == AmountType.PERCENTAGE.value],
            new_amount,
        ))
        planned = []
        for call in calls:
            if call.amount_type == AmountType.DOLLAR.value:
                amount = round_dollars(Decimal(call.call_amount) * ratio)
            else:
                amount = next(pct_amounts)
            planned.append([call, amount])

        # whole-dollar rounding can push the called total a few dollars past the new amount
        overshoot = sum((amount for _, amount in planned), Decimal("0")) - new_amount
        if overshoot > 0:
            dollar_rows = [p for p in planned if p[0].amount_type == AmountType.DOLLAR.value]
            if dollar_rows:
                largest = max(dollar_rows, key=lambda p: p[1])
                largest[1] -= overshoot

        result = []
        for call, amount in planned:
            if amount <= 0:
                raise ValidationError(f"Rescale would reduce capital call {call.id} to {amount}")
            paid = Decimal(call.paid_amount or 0)
            if amount < paid and not self.config.ALLOW_OVERPAYMENTS:
                raise ValidationError(
                    f"Rescale would reduce capital call {call.id} to {amount}, below the {paid} already paid"
                )
            if call.amount_type == AmountType.DOLLAR.value:
                pct = quantize_pct(amount / new_amount * HUNDRED)
            else:
                pct = Decimal(call.call_pct)
            result.append((call, amount, pct))

        if sum((amount for _, amount, _ in result), Decimal("0")) > new_amount:
            raise ValidationError(f"Capital calls would exceed the new commitment amount {new_amount}")
        return result

    def publish(self, result: SyncResult, user_id: Optional[int]) -> None:
        if not result.changed:
            return
        self.audit_sink.publish(AuditEventIn(
            event_type="capital_call_update",
            entity_type="commitment",
            entity_id=result.commitment_id,
            deal_id=result.deal_id,
            user_id=user_id,
            payload={
                "old_amount": str(result.old_amount),
                "new_amount": str(result.new_amount),
                "synced_capital_calls": len(result.updated_call_ids),
                "synced_closing_events": len(result.updated_event_ids),
                "capital_call_ids": result.updated_call_ids,
                "closing_event_ids": result.updated_event_ids,
            },
        ))
