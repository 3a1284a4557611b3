"""
Batch aggregation for calendar and report views

Hydrates many commitments with their deals and funds in bounded chunks
instead of one query per related record. Reads are independent and not
transactional across chunks: results are fine for display but must not
drive ledger invariant checks.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Sequence, TypeVar
import logging
import time

from capital_ledger.core.config import Settings, settings as default_settings
from capital_ledger.db.repository import LedgerRepository
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.deal import Deal
from capital_ledger.models.fund import Fund
from capital_ledger.schemas.capital_call import CalendarCapitalCall, CapitalCall as CapitalCallOut
from capital_ledger.services.directories import DealDirectory, FundDirectory

_log = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into lists of at most size elements"""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _unique(ids: Iterable[int]) -> List[int]:
    seen = set()
    result = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass
class BatchFetchResult:
    allocations: Dict[int, Commitment] = field(default_factory=dict)
    deals: Dict[int, Deal] = field(default_factory=dict)
    funds: Dict[int, Fund] = field(default_factory=dict)
    partial: bool = False


class _Deadline:
    def __init__(self, seconds: float, clock: Callable[[], float]):
        self.clock = clock
        self.expires_at = clock() + seconds

    def expired(self) -> bool:
        return self.clock() >= self.expires_at


class BatchQueryService:
    """Chunked fetching of commitments, deals and funds"""

    def __init__(
        self,
        repo: LedgerRepository,
        funds: FundDirectory,
        deals: DealDirectory,
        config: Settings = default_settings,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.repo = repo
        self.funds = funds
        self.deals = deals
        self.config = config
        self.monotonic = monotonic

    def batch_fetch(self, allocation_ids: Sequence[int]) -> BatchFetchResult:
        """
        Fetch commitments by id together with their distinct deals and funds.

        Args:
            allocation_ids: commitment ids; duplicates are ignored

        Returns:
            BatchFetchResult keyed by id. `partial` is set when the overall
            deadline expired before every chunk was fetched.
        """
        ids = _unique(allocation_ids)
        deadline = _Deadline(self.config.BATCH_FETCH_TIMEOUT_SECONDS, self.monotonic)
        if not self.config.ENABLE_BATCH_QUERIES:
            return self._fetch_individually(ids, deadline)

        result = BatchFetchResult()
        size = self.config.MAX_BATCH_SIZE

        for batch in chunked(ids, size):
            if deadline.expired():
                return self._timed_out(result, "commitments")
            for allocation in self.repo.get_commitments_batch(batch):
                result.allocations[allocation.id] = allocation

        deal_ids = _unique(a.deal_id for a in result.allocations.values())
        fund_ids = _unique(a.fund_id for a in result.allocations.values())

        for batch in chunked(deal_ids, size):
            if deadline.expired():
                return self._timed_out(result, "deals")
            for deal in self.deals.get_deals(batch):
                result.deals[deal.id] = deal

        for batch in chunked(fund_ids, size):
            if deadline.expired():
                return self._timed_out(result, "funds")
            for fund in self.funds.get_funds(batch):
                result.funds[fund.id] = fund

        return result

    def _fetch_individually(self, ids: List[int], deadline: _Deadline) -> BatchFetchResult:
        result = BatchFetchResult()
        for allocation_id in ids:
            if deadline.expired():
                return self._timed_out(result, "commitments")
            allocation = self.repo.get_commitment(allocation_id)
            if allocation is None:
                continue
            result.allocations[allocation.id] = allocation
            if allocation.deal_id not in result.deals:
                deal = self.deals.get_deal(allocation.deal_id)
                if deal is not None:
                    result.deals[deal.id] = deal
            if allocation.fund_id not in result.funds:
                fund = self.funds.get_fund(allocation.fund_id)
                if fund is not None:
                    result.funds[fund.id] = fund
        return result

    def _timed_out(self, result: BatchFetchResult, stage: str) -> BatchFetchResult:
        _log.warning(
            f"Batch fetch deadline of {self.config.BATCH_FETCH_TIMEOUT_SECONDS}s exceeded while "
            f"fetching {stage}; returning {len(result.allocations)} commitments"
        )
        result.partial = True
        return result

    def get_calendar_capital_calls(self, start: date, end: date) -> List[CalendarCapitalCall]:
        """Calls with a call or due date in [start, end], with fund and deal names"""
        calls = self.repo.list_calls_in_range(start, end)
        batch = self.batch_fetch([c.allocation_id for c in calls])

        enriched = []
        for call in calls:
            allocation = batch.allocations.get(call.allocation_id)
            deal = batch.deals.get(allocation.deal_id) if allocation else None
            fund = batch.funds.get(allocation.fund_id) if allocation else None
            row = CapitalCallOut.model_validate(call).model_dump()
            row.update(
                fund_id=allocation.fund_id if allocation else None,
                deal_id=allocation.deal_id if allocation else None,
                fund_name=fund.name if fund else "Unknown Fund",
                deal_name=deal.name if deal else "Unknown Deal",
                allocation_amount=Decimal(allocation.amount) if allocation else Decimal("0"),
            )
            enriched.append(CalendarCapitalCall(**row))
        return enriched
