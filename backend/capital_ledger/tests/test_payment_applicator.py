import pytest
from datetime import date
from decimal import Decimal
from capital_ledger.core.exceptions import ConcurrentUpdateError, ConflictError, NotFoundError, ValidationError
from capital_ledger.models import CapitalCall, CapitalCallPayment, Commitment, Fund
from capital_ledger.services.ledger import CapitalLedger
from capital_ledger.tests.conftest import TODAY, dollar_call


@pytest.fixture
def call(ledger, commitment):
    return ledger.create_capital_calls(commitment.id, [dollar_call(100_000)])[0]


def test_payments_progress_call_to_paid(ledger, call):
    first = ledger.apply_payment(call.id, 40_000, date(2025, 2, 10))
    assert first.previous_status == "scheduled"
    assert first.updated_call.status == "partial"
    assert first.updated_call.paid_amount == Decimal("40000")

    second = ledger.apply_payment(call.id, 60_000, date(2025, 2, 20))
    assert second.previous_paid_amount == Decimal("40000")
    assert second.updated_call.status == "paid"
    assert second.updated_call.paid_date == date(2025, 2, 20)

    with pytest.raises(ValidationError):
        ledger.apply_payment(call.id, 1, date(2025, 2, 21))


def test_paid_amount_equals_sum_of_payments(ledger, call, test_db_session):
    for amount in (10_000, 25_000.50, 4_999.50):
        ledger.apply_payment(call.id, amount, TODAY)

    payments = test_db_session.query(CapitalCallPayment).filter(
        CapitalCallPayment.capital_call_id == call.id
    ).all()
    refreshed = test_db_session.get(CapitalCall, call.id)
    assert len(payments) == 3
    assert refreshed.paid_amount == sum(p.payment_amount for p in payments)
    assert refreshed.paid_amount == Decimal("40000")


def test_overpayment_rejected_without_partial_write(ledger, call, test_db_session):
    ledger.apply_payment(call.id, 90_000, TODAY)

    with pytest.raises(ValidationError) as excinfo:
        ledger.apply_payment(call.id, 20_000, TODAY)

    assert "10000" in excinfo.value.message
    assert test_db_session.get(CapitalCall, call.id).paid_amount == Decimal("90000")
    assert test_db_session.query(CapitalCallPayment).count() == 1


def test_last_call_paid_funds_commitment(ledger, commitment, test_db_session):
    first, last = ledger.create_capital_calls(
        commitment.id, [dollar_call(400_000), dollar_call(600_000)]
    )
    ledger.apply_payment(first.id, 400_000, TODAY)
    assert test_db_session.get(Commitment, commitment.id).status == "partially_paid"

    result = ledger.apply_payment(last.id, 600_000, TODAY)

    assert result.commitment_status.value == "funded"
    assert test_db_session.get(Commitment, commitment.id).status == "funded"
    assert test_db_session.get(Fund, commitment.fund_id).aum == Decimal("1000000")


@pytest.mark.parametrize("amount", [0, -5, "0.001"])
def test_non_positive_payment_is_rejected(ledger, call, amount):
    with pytest.raises(ValidationError):
        ledger.apply_payment(call.id, amount, TODAY)


def test_unknown_payment_type_is_rejected(ledger, call):
    with pytest.raises(ValidationError):
        ledger.apply_payment(call.id, 1_000, TODAY, payment_type="crypto")


def test_payment_on_unknown_call(ledger):
    with pytest.raises(NotFoundError):
        ledger.apply_payment(4242, 1_000, TODAY)


def test_payment_on_defaulted_call_conflicts(ledger, commitment):
    call = ledger.create_capital_calls(
        commitment.id,
        [dollar_call(50_000, call_date=date(2024, 11, 1), due_date=date(2024, 12, 1))],
    )[0]
    ledger.calls.refresh_call_statuses(commitment.id)

    with pytest.raises(ConflictError):
        ledger.apply_payment(call.id, 10_000, TODAY)


def test_overpayment_allowed_by_configuration(test_db_session, audit_sink, test_settings, fund, deal):
    settings = test_settings.model_copy(update={"ALLOW_OVERPAYMENTS": True})
    ledger = CapitalLedger(test_db_session, audit_sink=audit_sink, config=settings, clock=lambda: TODAY)
    commitment = ledger.create_commitment(fund.id, deal.id, Decimal("100000"))
    call = ledger.create_capital_calls(commitment.id, [dollar_call(10_000)])[0]

    result = ledger.apply_payment(call.id, 12_500, TODAY)

    assert result.overpayment_amount == Decimal("2500")
    assert result.payment.is_overpayment is True
    assert result.updated_call.status == "paid"
    assert result.updated_call.paid_amount == Decimal("12500")


def test_payment_retries_after_version_conflict(ledger, call, monkeypatch):
    applicator = ledger.payments
    real_apply = applicator._apply_once
    attempts = []

    def flaky_apply(*args, **kwargs):
        attempts.append(args)
        if len(attempts) == 1:
            raise ConcurrentUpdateError(f"Capital call {call.id} was modified concurrently")
        return real_apply(*args, **kwargs)

    monkeypatch.setattr(applicator, "_apply_once", flaky_apply)

    result = ledger.apply_payment(call.id, 5_000, TODAY)

    assert len(attempts) == 2
    assert result.updated_call.paid_amount == Decimal("5000")


def test_payment_gives_up_after_max_retries(ledger, call, monkeypatch):
    def always_stale(*args, **kwargs):
        raise ConcurrentUpdateError("stale")

    monkeypatch.setattr(ledger.payments, "_apply_once", always_stale)

    with pytest.raises(ConcurrentUpdateError):
        ledger.apply_payment(call.id, 5_000, TODAY)


def test_payment_publishes_audit_event(ledger, call, audit_sink, commitment):
    ledger.apply_payment(call.id, 40_000, TODAY, payment_type="ach", user_id=3)

    event = audit_sink.events[-1]
    assert event.event_type == "capital_call_payment"
    assert event.entity_id == call.id
    assert event.deal_id == commitment.deal_id
    assert event.user_id == 3
    assert event.payload["previous_status"] == "scheduled"
    assert event.payload["new_status"] == "partial"
    assert event.payload["new_paid_amount"] == "40000.00"


def test_payment_locks_commitment_before_call(ledger, call, monkeypatch):
    repo = ledger.payments.repo
    real_commitment, real_call = repo.require_commitment, repo.require_call
    locks = []

    def require_commitment(commitment_id, for_update=False):
        if for_update:
            locks.append("commitment")
        return real_commitment(commitment_id, for_update=for_update)

    def require_call(call_id, for_update=False):
        if for_update:
            locks.append("call")
        return real_call(call_id, for_update=for_update)

    monkeypatch.setattr(repo, "require_commitment", require_commitment)
    monkeypatch.setattr(repo, "require_call", require_call)

    ledger.apply_payment(call.id, 5_000, TODAY)

    assert locks == ["commitment", "call"]
