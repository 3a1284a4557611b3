import pytest
from decimal import Decimal
from capital_ledger.core.exceptions import ConflictError, SyncError, ValidationError
from capital_ledger.models import CapitalCall, ClosingScheduleEvent, Commitment
from capital_ledger.tests.conftest import TODAY, dollar_call, pct_call


@pytest.fixture
def two_calls(ledger, commitment):
    return ledger.create_capital_calls(
        commitment.id, [dollar_call(400_000), dollar_call(600_000)]
    )


def _call_amounts(session, commitment_id):
    calls = session.query(CapitalCall).filter(
        CapitalCall.allocation_id == commitment_id
    ).order_by(CapitalCall.id).all()
    return [c.call_amount for c in calls]


def test_increase_rescales_dollar_calls(ledger, commitment, two_calls, test_db_session):
    ledger.update_commitment_amount(commitment.id, Decimal("1200000"))

    calls = test_db_session.query(CapitalCall).order_by(CapitalCall.id).all()
    assert [c.call_amount for c in calls] == [Decimal("480000"), Decimal("720000")]
    assert [c.call_pct for c in calls] == [Decimal("40"), Decimal("60")]
    assert sum(c.call_amount for c in calls) == test_db_session.get(Commitment, commitment.id).amount


def test_decrease_rescales_closing_targets(ledger, commitment, two_calls, closing_event, test_db_session):
    result = ledger.sync.sync_commitment_update(commitment.id, 1_000_000, 600_000)

    assert result.ratio == Decimal("0.6")
    assert result.updated_event_ids == [closing_event.id]
    assert test_db_session.get(ClosingScheduleEvent, closing_event.id).target_amount == Decimal("300000")
    assert _call_amounts(test_db_session, commitment.id) == [Decimal("240000"), Decimal("360000")]


def test_closing_target_scales_with_increase(ledger, commitment, closing_event, test_db_session):
    ledger.update_commitment_amount(commitment.id, 1_200_000)
    assert test_db_session.get(ClosingScheduleEvent, closing_event.id).target_amount == Decimal("600000")


def test_percentage_closing_targets_are_left_alone(ledger, commitment, deal, test_db_session):
    event = ClosingScheduleEvent(
        deal_id=deal.id, event_type="final_close", event_name="Final Close",
        amount_type="percentage", target_amount=Decimal("50"),
    )
    test_db_session.add(event)
    test_db_session.commit()

    result = ledger.sync.sync_commitment_update(commitment.id, 1_000_000, 2_000_000)

    assert result.updated_event_ids == []
    assert test_db_session.get(ClosingScheduleEvent, event.id).target_amount == Decimal("50")


def test_percentage_calls_keep_their_percentage(ledger, commitment, test_db_session):
    call = ledger.create_capital_calls(commitment.id, [pct_call(25)])[0]

    ledger.update_commitment_amount(commitment.id, 1_200_000)

    refreshed = test_db_session.get(CapitalCall, call.id)
    assert refreshed.call_pct == Decimal("25")
    assert refreshed.call_amount == Decimal("300000")


def test_same_amount_is_a_no_op(ledger, commitment, two_calls, audit_sink, test_db_session):
    result = ledger.sync.sync_commitment_update(commitment.id, 1_000_000, 1_000_000)

    assert not result.changed
    assert result.updated_call_ids == []
    assert _call_amounts(test_db_session, commitment.id) == [Decimal("400000"), Decimal("600000")]
    assert [e for e in audit_sink.events if e.event_type == "capital_call_update"] == []


def test_rounding_never_pushes_calls_past_new_amount(ledger, commitment, test_db_session):
    ledger.create_capital_calls(
        commitment.id, [dollar_call(333_333.50), dollar_call(333_333.50), dollar_call(333_333)]
    )

    ledger.update_commitment_amount(commitment.id, 1_000_001)

    assert sum(_call_amounts(test_db_session, commitment.id)) <= Decimal("1000001")


def test_non_positive_old_amount_is_rejected(ledger, commitment):
    with pytest.raises(ValidationError):
        ledger.sync.sync_commitment_update(commitment.id, 0, 1_000_000)


def test_stale_old_amount_conflicts(ledger, commitment, two_calls):
    with pytest.raises(ConflictError):
        ledger.sync.sync_commitment_update(commitment.id, 900_000, 1_200_000)


def test_shrinking_below_paid_is_rejected(ledger, commitment, two_calls, test_db_session):
    ledger.apply_payment(two_calls[0].id, 400_000, TODAY)

    with pytest.raises(ValidationError):
        ledger.update_commitment_amount(commitment.id, 500_000)

    assert test_db_session.get(Commitment, commitment.id).amount == Decimal("1000000")
    assert _call_amounts(test_db_session, commitment.id) == [Decimal("400000"), Decimal("600000")]


def test_rescale_unfreezes_paid_call_when_it_grows(ledger, commitment, two_calls, test_db_session):
    ledger.apply_payment(two_calls[0].id, 400_000, TODAY)

    ledger.update_commitment_amount(commitment.id, 1_200_000)

    refreshed = test_db_session.get(CapitalCall, two_calls[0].id)
    assert refreshed.call_amount == Decimal("480000")
    assert refreshed.status == "partial"


def test_failed_row_rolls_back_whole_rescale(ledger, commitment, two_calls, closing_event, test_db_session, monkeypatch):
    first, second = two_calls
    real_flush = ledger.repo.flush

    def failing_flush():
        if second.call_amount == Decimal("720000"):
            raise RuntimeError("connection reset")
        real_flush()

    monkeypatch.setattr(ledger.repo, "flush", failing_flush)

    with pytest.raises(SyncError) as excinfo:
        ledger.sync.sync_commitment_update(commitment.id, 1_000_000, 1_200_000)

    assert excinfo.value.completed_call_ids == [first.id]
    assert excinfo.value.completed_event_ids == []
    assert test_db_session.get(Commitment, commitment.id).amount == Decimal("1000000")
    assert _call_amounts(test_db_session, commitment.id) == [Decimal("400000"), Decimal("600000")]
    assert test_db_session.get(ClosingScheduleEvent, closing_event.id).target_amount == Decimal("500000")


def test_rescale_publishes_one_audit_event(ledger, commitment, two_calls, closing_event, audit_sink):
    ledger.update_commitment_amount(commitment.id, 1_200_000, user_id=11)

    events = [e for e in audit_sink.events if e.event_type == "capital_call_update"]
    assert len(events) == 1
    assert events[0].user_id == 11
    assert events[0].payload["synced_capital_calls"] == 2
    assert events[0].payload["synced_closing_events"] == 1
    assert events[0].payload["capital_call_ids"] == [c.id for c in two_calls]


def test_rescale_updates_portfolio_weights(ledger, fund, make_deal, commitment, test_db_session):
    other = ledger.create_commitment(fund.id, make_deal("Project Beacon").id, 1_000_000)

    ledger.update_commitment_amount(commitment.id, 3_000_000)

    assert test_db_session.get(Commitment, commitment.id).portfolio_weight == Decimal("75")
    assert test_db_session.get(Commitment, other.id).portfolio_weight == Decimal("25")


def test_percentage_calls_rescale_to_odd_cent_amount(ledger, commitment, test_db_session):
    ledger.create_capital_calls(commitment.id, [pct_call(50), pct_call(50)])

    ledger.update_commitment_amount(commitment.id, Decimal("1000000.01"))

    assert _call_amounts(test_db_session, commitment.id) == [Decimal("500000.01"), Decimal("500000.00")]
