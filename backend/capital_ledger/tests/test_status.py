import pytest
from datetime import date
from decimal import Decimal
from capital_ledger.services.status import (
    CallStatus,
    CommitmentStatus,
    derive_call_status,
    derive_commitment_status,
)

AS_OF = date(2025, 6, 1)


def derive(call_amount, paid, call_date=date(2025, 7, 1), due_date=date(2025, 8, 1),
           current=None, grace_days=7, override=False):
    return derive_call_status(
        Decimal(call_amount),
        Decimal(paid),
        call_date=call_date,
        due_date=due_date,
        as_of=AS_OF,
        grace_days=grace_days,
        current=current,
        override_terminal=override,
    )


@pytest.mark.parametrize("paid,call_date,expected", [
    (0, date(2025, 7, 1), CallStatus.SCHEDULED),
    (0, date(2025, 5, 1), CallStatus.CALLED),
    (0, AS_OF, CallStatus.CALLED),
    (40, date(2025, 7, 1), CallStatus.PARTIAL),
    (100, date(2025, 7, 1), CallStatus.PAID),
])
def test_call_status_follows_amounts(paid, call_date, expected):
    assert derive(100, paid, call_date=call_date) is expected


def test_call_defaults_only_after_grace_period():
    due = date(2025, 5, 20)
    # 12 days late with a 14 day grace period is still open
    assert derive(100, 40, call_date=date(2025, 5, 1), due_date=due, grace_days=14) is CallStatus.PARTIAL
    assert derive(100, 40, call_date=date(2025, 5, 1), due_date=due, grace_days=7) is CallStatus.DEFAULTED
    assert derive(100, 0, call_date=date(2025, 5, 1), due_date=due, grace_days=7) is CallStatus.DEFAULTED


def test_grace_boundary_day_is_not_default():
    due = date(2025, 5, 25)
    assert derive(100, 0, call_date=date(2025, 5, 1), due_date=due, grace_days=7) is CallStatus.CALLED


def test_fully_paid_late_call_is_paid():
    assert derive(100, 100, call_date=date(2025, 1, 1), due_date=date(2025, 2, 1)) is CallStatus.PAID


def test_terminal_status_is_kept_without_override():
    assert derive(100, 40, current="defaulted") is CallStatus.DEFAULTED
    assert derive(100, 40, current="paid") is CallStatus.PAID
    assert derive(100, 40, current="paid", override=True) is CallStatus.PARTIAL


@pytest.mark.parametrize("current,statuses,paid,expected", [
    ("committed", ["paid", "paid"], 100, CommitmentStatus.FUNDED),
    ("committed", ["paid", "scheduled"], 50, CommitmentStatus.PARTIALLY_PAID),
    ("committed", ["partial"], 10, CommitmentStatus.PARTIALLY_PAID),
    ("committed", ["scheduled"], 0, CommitmentStatus.COMMITTED),
    ("committed", [], 0, CommitmentStatus.COMMITTED),
    ("unfunded", ["called"], 0, CommitmentStatus.UNFUNDED),
    ("committed", ["called", "scheduled"], 0, CommitmentStatus.UNFUNDED),
    ("committed", ["defaulted"], 0, CommitmentStatus.UNFUNDED),
    ("funded", ["paid", "scheduled"], 50, CommitmentStatus.PARTIALLY_PAID),
    ("written_off", ["paid"], 100, CommitmentStatus.WRITTEN_OFF),
])
def test_commitment_status(current, statuses, paid, expected):
    assert derive_commitment_status(current, statuses, Decimal(paid)) is expected
