"""
Capital call ledger

- Create draw-down schedules against a commitment (all-or-nothing)
- Generate evenly spaced schedules from a frequency
- Re-derive call and commitment statuses
- Administrative override of terminal call statuses
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, List, Optional
import logging

from dateutil.relativedelta import relativedelta

from capital_ledger.core.config import Settings, settings as default_settings
from capital_ledger.core.exceptions import ConflictError, ValidationError
from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.transaction import CapitalCall
from capital_ledger.schemas.audit import AuditEventIn
from capital_ledger.schemas.capital_call import CapitalCallRequest
from capital_ledger.services.amounts import (
    AmountType,
    HUNDRED,
    NormalizedAmount,
    allocate_percentages,
    normalize,
    quantize_money,
    requested_amount,
    to_decimal,
)
from capital_ledger.services.audit import AuditSink
from capital_ledger.services.directories import FundDirectory
from capital_ledger.services.status import (
    CallStatus,
    CommitmentStatus,
    derive_call_status,
    derive_commitment_status,
    is_terminal,
    utc_today,
)

_log = logging.getLogger(__name__)

SCHEDULE_STEPS = {
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "biannual": relativedelta(months=6),
    "annual": relativedelta(years=1),
}


class CapitalCallLedger:
    """Draw-down records against commitments and their status"""

    def __init__(
        self,
        repo: LedgerRepository,
        funds: FundDirectory,
        audit_sink: AuditSink,
        config: Settings = default_settings,
        clock: Callable[[], date] = utc_today,
    ):
        self.repo = repo
        self.funds = funds
        self.audit_sink = audit_sink
        self.config = config
        self.clock = clock

    def create_capital_calls(
        self, commitment_id: int, calls: List[CapitalCallRequest]
    ) -> List[CapitalCall]:
        """
        Create a batch of calls against a commitment.

        Every call stores both its dollar amount and its percentage of the
        commitment. The batch is rejected as a whole when the calls would
        push the commitment's called total above its amount.

        Args:
            commitment_id: owning commitment
            calls: requested calls

        Returns:
            The created calls, in request order
        """
        if not calls:
            raise ValidationError("At least one capital call is required")

        with self.repo.atomic():
            commitment = self.repo.require_commitment(commitment_id, for_update=True)
            if commitment.status == CommitmentStatus.WRITTEN_OFF.value:
                raise ConflictError(f"Commitment {commitment_id} is written off")

            commitment_amount = Decimal(commitment.amount)
            normalized_calls = []
            for index, request in enumerate(calls, start=1):
                if request.due_date < request.call_date:
                    raise ValidationError(f"Call {index} is due before its call date")
                normalized_calls.append(normalize(
                    requested_amount(request.amount_type, request.amount), commitment_amount
                ))

            # percentage calls continue the rounding of the ones already stored
            prior_pct = sum(
                (Decimal(c.call_pct) for c in self.repo.list_calls(commitment_id)
                 if c.amount_type == AmountType.PERCENTAGE.value),
                Decimal("0"),
            )
            pct_amounts = iter(allocate_percentages(
                [n.call_pct for n in normalized_calls if n.amount_type is AmountType.PERCENTAGE],
                commitment_amount,
                prior_pct,
            ))

            pending = []
            for index, (request, normalized) in enumerate(zip(calls, normalized_calls), start=1):
                if normalized.amount_type is AmountType.PERCENTAGE:
                    normalized = NormalizedAmount(
                        AmountType.PERCENTAGE, next(pct_amounts), normalized.call_pct
                    )
                if normalized.call_amount <= 0:
                    raise ValidationError(f"Call {index} rounds to a zero amount")
                pending.append((request, normalized))

            existing_total = self.repo.sum_call_amounts(commitment_id)
            new_total = sum((n.call_amount for _, n in pending), Decimal("0"))
            if existing_total + new_total > commitment_amount:
                raise ValidationError(
                    f"Capital calls would total {existing_total + new_total}, exceeding the "
                    f"commitment of {commitment_amount}. Remaining: {commitment_amount - existing_total}"
                )

            created = []
            for request, normalized in pending:
                call = CapitalCall(
                    allocation_id=commitment_id,
                    call_amount=normalized.call_amount,
                    amount_type=normalized.amount_type.value,
                    call_pct=normalized.call_pct,
                    call_date=request.call_date,
                    due_date=request.due_date,
                    paid_amount=Decimal("0"),
                    status=CallStatus.SCHEDULED.value,
                    notes=request.notes,
                )
                created.append(self.repo.add(call))

            self.recompute_commitment_status(commitment)

        _log.info(
            f"Created {len(created)} capital calls totalling {new_total} on commitment {commitment_id}"
        )
        return created

    def build_call_schedule(
        self,
        commitment: Commitment,
        first_call_date: date,
        frequency: str = "quarterly",
        call_count: int = 1,
        call_pct: Optional[Decimal] = None,
        dollar_total: Optional[Decimal] = None,
    ) -> List[CapitalCallRequest]:
        """
        Generate call requests spaced by frequency.

        Percentage schedules give every call call_pct and the last one the
        remainder up to 100%. Dollar schedules split dollar_total evenly,
        with rounding cents going to the last call.
        """
        if frequency == "single":
            call_count = 1
        elif frequency not in SCHEDULE_STEPS:
            raise ValidationError(f"Unknown call frequency {frequency!r}")
        if call_count < 1:
            raise ValidationError("call_count must be at least 1")
        if (call_pct is None) == (dollar_total is None):
            raise ValidationError("Provide exactly one of call_pct or dollar_total")

        if call_pct is not None:
            pct = to_decimal(call_pct, "call_pct")
            if frequency == "single":
                pct = HUNDRED
            remaining = HUNDRED - pct * (call_count - 1)
            if pct <= 0 or remaining <= 0:
                raise ValidationError(
                    f"{call_count} calls of {pct}% exceed 100% of the commitment"
                )
            amounts = [pct] * (call_count - 1) + [remaining]
            amount_type = AmountType.PERCENTAGE
        else:
            total = to_decimal(dollar_total, "dollar_total")
            if total <= 0:
                raise ValidationError("dollar_total must be greater than 0")
            each = quantize_money(total / call_count)
            amounts = [each] * (call_count - 1) + [total - each * (call_count - 1)]
            amount_type = AmountType.DOLLAR

        due_days = timedelta(days=self.config.DEFAULT_DUE_DAYS)
        requests = []
        for i, amount in enumerate(amounts):
            call_date = first_call_date
            if i:
                call_date = first_call_date + SCHEDULE_STEPS[frequency] * i
            requests.append(CapitalCallRequest(
                amount_type=amount_type,
                amount=amount,
                call_date=call_date,
                due_date=call_date + due_days,
                notes=f"Scheduled payment {i + 1} of {len(amounts)}",
            ))
        _log.debug(f"Built {len(requests)} {frequency} call requests for commitment {commitment.id}")
        return requests

    def get_call(self, call_id: int) -> CapitalCall:
        return self.repo.require_call(call_id)

    def list_calls(self, commitment_id: int) -> List[CapitalCall]:
        self.repo.require_commitment(commitment_id)
        return self.repo.list_calls(commitment_id)

    def list_payments(self, call_id: int):
        self.repo.require_call(call_id)
        return self.repo.list_payments(call_id)

    def recompute_call_status(
        self, call: CapitalCall, as_of: Optional[date] = None, override_terminal: bool = False
    ) -> CallStatus:
        status = derive_call_status(
            Decimal(call.call_amount),
            Decimal(call.paid_amount or 0),
            call_date=call.call_date,
            due_date=call.due_date,
            as_of=as_of or self.clock(),
            grace_days=self.config.PAYMENT_GRACE_DAYS,
            current=call.status,
            override_terminal=override_terminal,
        )
        call.status = status.value
        return status

    def recompute_commitment_status(self, commitment: Commitment) -> CommitmentStatus:
        calls = self.repo.list_calls(commitment.id)
        total_paid = sum((Decimal(c.paid_amount or 0) for c in calls), Decimal("0"))
        status = derive_commitment_status(commitment.status, [c.status for c in calls], total_paid)
        if status.value != commitment.status:
            _log.info(f"Commitment {commitment.id} status {commitment.status} -> {status.value}")
            commitment.status = status.value
            self.repo.flush()
            # AUM counts funded commitments only
            self.funds.update_fund_aum(commitment.fund_id)
        self.repo.flush()
        return status

    def refresh_call_statuses(
        self, commitment_id: Optional[int] = None, as_of: Optional[date] = None
    ) -> List[int]:
        """
        Re-derive every open call (activation and defaulting by date).

        Returns:
            Ids of calls whose status changed
        """
        as_of = as_of or self.clock()
        changed = []
        with self.repo.atomic():
            touched = set()
            for call in self.repo.list_open_calls(commitment_id):
                before = call.status
                if self.recompute_call_status(call, as_of).value != before:
                    changed.append(call.id)
                    touched.add(call.allocation_id)
            self.repo.flush()
            for allocation_id in sorted(touched):
                self.recompute_commitment_status(self.repo.require_commitment(allocation_id))

        if changed:
            _log.info(f"Status sweep as of {as_of} changed {len(changed)} capital calls")
        return changed

    def override_call_status(
        self, call_id: int, status: str, reason: str, user_id: Optional[int] = None
    ) -> CapitalCall:
        """Administrative change of a terminal call's status"""
        try:
            target = CallStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown capital call status {status!r}") from e
        if not reason:
            raise ValidationError("An override reason is required")

        with self.repo.atomic():
            call = self.repo.require_call(call_id, for_update=True)
            if not is_terminal(call.status):
                raise ConflictError(
                    f"Capital call {call_id} is {call.status}; only paid or defaulted calls can be overridden"
                )
            call_amount = Decimal(call.call_amount)
            paid = Decimal(call.paid_amount or 0)
            consistent = {
                CallStatus.SCHEDULED: paid == 0,
                CallStatus.CALLED: paid == 0,
                CallStatus.PARTIAL: 0 < paid < call_amount,
                CallStatus.PAID: paid >= call_amount,
                CallStatus.DEFAULTED: paid < call_amount,
            }[target]
            if not consistent:
                raise ValidationError(
                    f"Status {target.value} does not match paid {paid} of {call_amount}"
                )
            previous = call.status
            call.status = target.value
            if target is not CallStatus.PAID:
                call.paid_date = None
            self.repo.flush()
            commitment = self.repo.require_commitment(call.allocation_id)
            self.recompute_commitment_status(commitment)
            deal_id = commitment.deal_id

        _log.info(f"Capital call {call_id} status overridden {previous} -> {target.value}: {reason}")
        self.audit_sink.publish(AuditEventIn(
            event_type="capital_call_status_override",
            entity_type="capital_call",
            entity_id=call_id,
            deal_id=deal_id,
            user_id=user_id,
            payload={"previous_status": previous, "new_status": target.value, "reason": reason},
        ))
        return call
