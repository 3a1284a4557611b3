import itertools
import pytest
from datetime import date
from decimal import Decimal
from capital_ledger.services.batch_query import BatchQueryService, chunked
from capital_ledger.tests.conftest import dollar_call


@pytest.fixture
def three_commitments(ledger, fund, make_deal):
    return [
        ledger.create_commitment(fund.id, make_deal(f"Deal {n}").id, 100_000 * n)
        for n in (1, 2, 3)
    ]


def test_chunked():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []


def test_batch_fetch_chunks_allocations(ledger, test_settings, three_commitments, monkeypatch):
    service = BatchQueryService(
        ledger.repo, ledger.funds, ledger.deals, test_settings.model_copy(update={"MAX_BATCH_SIZE": 2})
    )
    fetched_chunks = []
    real_fetch = ledger.repo.get_commitments_batch

    def spy(ids):
        fetched_chunks.append(list(ids))
        return real_fetch(ids)

    monkeypatch.setattr(ledger.repo, "get_commitments_batch", spy)
    ids = [c.id for c in three_commitments]

    result = service.batch_fetch(ids)

    assert len(fetched_chunks) == 2
    assert sorted(result.allocations) == sorted(ids)
    assert len(result.deals) == 3
    assert list(result.funds) == [three_commitments[0].fund_id]
    assert not result.partial


def test_duplicate_ids_are_fetched_once(ledger, three_commitments, monkeypatch):
    fetched = []
    real_fetch = ledger.repo.get_commitments_batch
    monkeypatch.setattr(
        ledger.repo, "get_commitments_batch", lambda ids: fetched.extend(ids) or real_fetch(ids)
    )
    first = three_commitments[0].id

    result = ledger.batch_fetch([first, first, first])

    assert fetched == [first]
    assert list(result.allocations) == [first]


def test_unknown_ids_are_skipped(ledger, three_commitments):
    result = ledger.batch_fetch([three_commitments[0].id, 9999])
    assert list(result.allocations) == [three_commitments[0].id]


def test_individual_fallback_when_batching_disabled(ledger, test_settings, three_commitments, monkeypatch):
    service = BatchQueryService(
        ledger.repo, ledger.funds, ledger.deals,
        test_settings.model_copy(update={"ENABLE_BATCH_QUERIES": False}),
    )

    def fail(ids):
        raise AssertionError("batch query used while batching is disabled")

    monkeypatch.setattr(ledger.repo, "get_commitments_batch", fail)

    result = service.batch_fetch([c.id for c in three_commitments])

    assert len(result.allocations) == 3
    assert len(result.deals) == 3
    assert len(result.funds) == 1


def test_deadline_returns_partial_result(ledger, test_settings, three_commitments):
    ticks = itertools.count()
    service = BatchQueryService(
        ledger.repo, ledger.funds, ledger.deals,
        test_settings.model_copy(update={"MAX_BATCH_SIZE": 2, "BATCH_FETCH_TIMEOUT_SECONDS": 2}),
        monotonic=lambda: next(ticks),
    )

    result = service.batch_fetch([c.id for c in three_commitments])

    assert result.partial
    assert len(result.allocations) == 2
    assert result.deals == {}


def test_calendar_capital_calls_are_enriched(ledger, fund, three_commitments):
    first, second, _ = three_commitments
    ledger.create_capital_calls(first.id, [
        dollar_call(10_000, call_date=date(2025, 2, 1), due_date=date(2025, 3, 1)),
        dollar_call(10_000, call_date=date(2025, 6, 1), due_date=date(2025, 7, 1)),
    ])
    ledger.create_capital_calls(second.id, [
        dollar_call(20_000, call_date=date(2025, 1, 20), due_date=date(2025, 2, 20)),
    ])

    rows = ledger.get_calendar_capital_calls(date(2025, 2, 1), date(2025, 2, 28))

    assert [r.call_amount for r in rows] == [Decimal("20000"), Decimal("10000")]
    assert rows[0].deal_name == "Deal 2"
    assert rows[0].fund_name == fund.name
    assert rows[0].allocation_amount == Decimal("200000")
    assert rows[1].deal_id == first.deal_id
