"""
Capital call and commitment status state machine

Status is a function of amounts and dates. Nothing outside this module
decides a status, apart from the initial `scheduled` state and the
administrative override of terminal states.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional


class CallStatus(str, Enum):
    SCHEDULED = "scheduled"
    CALLED = "called"
    PARTIAL = "partial"
    PAID = "paid"
    DEFAULTED = "defaulted"


class CommitmentStatus(str, Enum):
    COMMITTED = "committed"
    FUNDED = "funded"
    PARTIALLY_PAID = "partially_paid"
    UNFUNDED = "unfunded"
    WRITTEN_OFF = "written_off"


TERMINAL_CALL_STATUSES = frozenset({CallStatus.PAID, CallStatus.DEFAULTED})


def is_terminal(status: str) -> bool:
    return CallStatus(status) in TERMINAL_CALL_STATUSES


def is_past_grace(due_date: Optional[date], as_of: date, grace_days: int) -> bool:
    if due_date is None:
        return False
    return as_of > due_date + timedelta(days=grace_days)


def derive_call_status(
    call_amount: Decimal,
    paid_amount: Decimal,
    *,
    call_date: Optional[date],
    due_date: Optional[date],
    as_of: date,
    grace_days: int,
    current: Optional[str] = None,
    override_terminal: bool = False,
) -> CallStatus:
    """
    Derive a call's status from its amounts.

    Args:
        call_amount: amount requested by the call
        paid_amount: sum of payments applied so far
        call_date: date the call becomes active
        due_date: payment deadline
        as_of: evaluation date
        grace_days: days after due_date before an unpaid call defaults
        current: stored status; terminal statuses are kept unless override_terminal
        override_terminal: administrative re-derivation of a terminal call

    Returns:
        The derived CallStatus
    """
    if current is not None and is_terminal(current) and not override_terminal:
        return CallStatus(current)

    if paid_amount >= call_amount:
        return CallStatus.PAID
    if is_past_grace(due_date, as_of, grace_days):
        return CallStatus.DEFAULTED
    if paid_amount > 0:
        return CallStatus.PARTIAL
    if call_date is not None and call_date <= as_of:
        return CallStatus.CALLED
    return CallStatus.SCHEDULED


def derive_commitment_status(
    current: str,
    call_statuses: Iterable[str],
    total_paid: Decimal,
) -> CommitmentStatus:
    """
    funded when every call is paid, partially_paid when money has come in
    but some call is still open, unfunded when capital has been called and
    nothing paid, otherwise the current status. A written-off commitment
    stays written off.
    """
    current_status = CommitmentStatus(current)
    if current_status is CommitmentStatus.WRITTEN_OFF:
        return current_status

    statuses = [CallStatus(s) for s in call_statuses]
    if statuses and all(s is CallStatus.PAID for s in statuses):
        return CommitmentStatus.FUNDED
    if total_paid > 0:
        return CommitmentStatus.PARTIALLY_PAID
    if any(s in (CallStatus.CALLED, CallStatus.DEFAULTED) for s in statuses):
        return CommitmentStatus.UNFUNDED
    return current_status


def utc_today() -> date:
    return datetime.now(timezone.utc).date()
