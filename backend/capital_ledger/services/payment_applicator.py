"""
Payment applicator

Validates a payment against its capital call, appends the immutable payment
record, and re-derives call and commitment status in the same unit of work.

Payments on one commitment are serialized by a row lock on the commitment,
taken before the call lock (where the store supports it), and by the call
version counter: a stale write raises ConcurrentUpdateError, the unit of
work is rolled back and the whole validation is repeated against fresh
amounts.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional
import logging

from capital_ledger.core.config import Settings, settings as default_settings
from capital_ledger.core.exceptions import ConcurrentUpdateError, ConflictError, ValidationError
from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.transaction import CapitalCall, CapitalCallPayment
from capital_ledger.schemas.audit import AuditEventIn
from capital_ledger.services.amounts import quantize_money, to_decimal
from capital_ledger.services.audit import AuditSink
from capital_ledger.services.capital_call_ledger import CapitalCallLedger
from capital_ledger.services.status import CallStatus, CommitmentStatus, is_terminal, utc_today

_log = logging.getLogger(__name__)

PAYMENT_TYPES = ("wire", "check", "ach", "other")


@dataclass
class PaymentResult:
    payment: CapitalCallPayment
    updated_call: CapitalCall
    commitment_status: CommitmentStatus
    previous_paid_amount: Decimal
    previous_status: str
    overpayment_amount: Decimal


class PaymentApplicator:
    """Applies payments to capital calls"""

    def __init__(
        self,
        repo: LedgerRepository,
        ledger: CapitalCallLedger,
        audit_sink: AuditSink,
        config: Settings = default_settings,
        clock: Callable[[], date] = utc_today,
    ):
        self.repo = repo
        self.ledger = ledger
        self.audit_sink = audit_sink
        self.config = config
        self.clock = clock

    def apply_payment(
        self,
        call_id: int,
        amount: Any,
        payment_date: date,
        payment_type: str = "wire",
        user_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> PaymentResult:
        """
        Apply a payment to a capital call.

        Args:
            call_id: capital call being paid
            amount: payment amount, must be positive
            payment_date: date the money was received
            payment_type: wire, check, ach or other
            user_id: acting user, recorded on the payment
            notes: free-text notes

        Returns:
            PaymentResult with the new payment and the updated call
        """
        payment_amount = quantize_money(to_decimal(amount, "payment amount"))
        if payment_amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")
        if payment_type not in PAYMENT_TYPES:
            raise ValidationError(
                f"Payment type must be one of {', '.join(PAYMENT_TYPES)}, got {payment_type!r}"
            )
        if payment_date is None:
            raise ValidationError("Payment date is required")

        attempts = self.config.PAYMENT_MAX_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                result = self._apply_once(
                    call_id, payment_amount, payment_date, payment_type, user_id, notes
                )
                break
            except ConcurrentUpdateError:
                if attempt == attempts:
                    _log.error(f"Payment on capital call {call_id} lost {attempts} version races")
                    raise
                _log.warning(
                    f"Capital call {call_id} changed during payment (attempt {attempt}/{attempts}); retrying"
                )

        self._publish(result, user_id)
        return result

    def _apply_once(
        self,
        call_id: int,
        payment_amount: Decimal,
        payment_date: date,
        payment_type: str,
        user_id: Optional[int],
        notes: Optional[str],
    ) -> PaymentResult:
        with self.repo.atomic():
            # commitment before call: payments on one commitment run one at a time
            allocation_id = self.repo.require_call(call_id).allocation_id
            commitment = self.repo.require_commitment(allocation_id, for_update=True)
            call = self.repo.require_call(call_id, for_update=True)
            previous_paid = Decimal(call.paid_amount or 0)
            previous_status = call.status
            call_amount = Decimal(call.call_amount)
            new_paid = previous_paid + payment_amount
            excess = max(new_paid - call_amount, Decimal("0"))

            if excess > 0 and not self.config.ALLOW_OVERPAYMENTS:
                raise ValidationError(
                    f"Payment amount of {payment_amount} would exceed the call amount. "
                    f"The maximum allowed payment is {call_amount - previous_paid}"
                )
            if is_terminal(call.status):
                raise ConflictError(f"Capital call {call_id} is {call.status} and accepts no payments")

            payment = self.repo.add(CapitalCallPayment(
                capital_call_id=call_id,
                payment_amount=payment_amount,
                payment_date=payment_date,
                payment_type=payment_type,
                notes=notes,
                created_by=user_id,
                is_overpayment=excess > 0,
            ))
            if excess > 0:
                _log.warning(f"Overpayment of {excess} accepted on capital call {call_id}")

            call.paid_amount = new_paid
            status = self.ledger.recompute_call_status(call, self.clock())
            if status is CallStatus.PAID and call.paid_date is None:
                call.paid_date = payment_date
            self.repo.flush()

            commitment_status = self.ledger.recompute_commitment_status(commitment)

        _log.info(
            f"Payment of {payment_amount} applied to capital call {call_id}: "
            f"{previous_paid} -> {new_paid} ({previous_status} -> {status.value})"
        )
        return PaymentResult(
            payment=payment,
            updated_call=call,
            commitment_status=commitment_status,
            previous_paid_amount=previous_paid,
            previous_status=previous_status,
            overpayment_amount=excess,
        )

    def _publish(self, result: PaymentResult, user_id: Optional[int]) -> None:
        call = result.updated_call
        self.audit_sink.publish(AuditEventIn(
            event_type="capital_call_payment",
            entity_type="capital_call",
            entity_id=call.id,
            deal_id=call.commitment.deal_id,
            user_id=user_id,
            payload={
                "payment_id": result.payment.id,
                "allocation_id": call.allocation_id,
                "payment_amount": str(result.payment.payment_amount),
                "previous_paid_amount": str(result.previous_paid_amount),
                "new_paid_amount": str(call.paid_amount),
                "previous_status": result.previous_status,
                "new_status": call.status,
                "commitment_status": result.commitment_status.value,
                "overpayment_amount": str(result.overpayment_amount),
            },
        ))
