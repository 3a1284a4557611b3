"""
Fund and deal directories

The ledger reads fund and deal identity through these interfaces and only
signals changes that belong to them (AUM refresh, deal stage). The SQL
implementations back them with the local funds/deals tables.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional, Sequence
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from capital_ledger.models.commitment import Commitment
from capital_ledger.models.deal import Deal
from capital_ledger.models.fund import Fund
from capital_ledger.services.status import CommitmentStatus

_log = logging.getLogger(__name__)

INVESTED_STAGE = "invested"
CLOSING_STAGE = "closing"


class FundDirectory(ABC):
    @abstractmethod
    def get_fund(self, fund_id: int) -> Optional[Fund]:
        ...

    @abstractmethod
    def get_funds(self, fund_ids: Sequence[int]) -> List[Fund]:
        ...

    @abstractmethod
    def update_fund_aum(self, fund_id: int) -> None:
        ...


class DealDirectory(ABC):
    @abstractmethod
    def get_deal(self, deal_id: int) -> Optional[Deal]:
        ...

    @abstractmethod
    def get_deals(self, deal_ids: Sequence[int]) -> List[Deal]:
        ...

    @abstractmethod
    def on_commitment_created(self, deal_id: int) -> None:
        ...

    @abstractmethod
    def on_last_commitment_removed(self, deal_id: int) -> None:
        ...


class SqlFundDirectory(FundDirectory):
    """Fund directory over the funds table"""

    def __init__(self, db: Session):
        self.db = db

    def get_fund(self, fund_id: int) -> Optional[Fund]:
        return self.db.query(Fund).filter(Fund.id == fund_id).first()

    def get_funds(self, fund_ids: Sequence[int]) -> List[Fund]:
        if not fund_ids:
            return []
        return self.db.query(Fund).filter(Fund.id.in_(list(fund_ids))).all()

    def update_fund_aum(self, fund_id: int) -> None:
        """AUM is the sum of funded commitment amounts"""
        fund = self.get_fund(fund_id)
        if fund is None:
            return
        total = (
            self.db.query(func.coalesce(func.sum(Commitment.amount), 0))
            .filter(
                Commitment.fund_id == fund_id,
                Commitment.status == CommitmentStatus.FUNDED.value,
            )
            .scalar()
        )
        fund.aum = Decimal(str(total))
        self.db.flush()
        _log.info(f"Fund {fund_id} AUM updated to {fund.aum}")


class SqlDealDirectory(DealDirectory):
    """Deal directory over the deals table"""

    def __init__(self, db: Session):
        self.db = db

    def get_deal(self, deal_id: int) -> Optional[Deal]:
        return self.db.query(Deal).filter(Deal.id == deal_id).first()

    def get_deals(self, deal_ids: Sequence[int]) -> List[Deal]:
        if not deal_ids:
            return []
        return self.db.query(Deal).filter(Deal.id.in_(list(deal_ids))).all()

    def on_commitment_created(self, deal_id: int) -> None:
        deal = self.get_deal(deal_id)
        if deal is not None and deal.stage != INVESTED_STAGE:
            _log.info(f"Deal {deal_id} moved from {deal.stage} to {INVESTED_STAGE}")
            deal.stage = INVESTED_STAGE
            self.db.flush()

    def on_last_commitment_removed(self, deal_id: int) -> None:
        deal = self.get_deal(deal_id)
        if deal is not None and deal.stage == INVESTED_STAGE:
            _log.info(f"Deal {deal_id} has no active commitments; reverting to {CLOSING_STAGE}")
            deal.stage = CLOSING_STAGE
            self.db.flush()
