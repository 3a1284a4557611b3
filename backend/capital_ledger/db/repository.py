"""
Ledger repository

Every ledger component receives one of these in its constructor instead of
reaching for a global session. It owns the unit-of-work boundary
(`atomic`) and the row-locking reads used by the payment path.
"""
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional, Sequence
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from capital_ledger.core.exceptions import (
    ConcurrentUpdateError,
    NotFoundError,
    StoreError,
)
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.closing_schedule import ClosingScheduleEvent
from capital_ledger.models.transaction import CapitalCall, CapitalCallPayment, Distribution

_log = logging.getLogger(__name__)


class LedgerRepository:
    """SQLAlchemy-backed access to commitments, calls, payments and closing events"""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def atomic(self) -> Iterator["LedgerRepository"]:
        """
        Unit of work. Nested scopes join the outermost one; only the
        outermost commits, and any exception rolls the whole unit back.
        """
        self._depth += 1
        outermost = self._depth == 1
        try:
            yield self
            if outermost:
                self.db.commit()
        except StaleDataError as e:
            if outermost:
                self.db.rollback()
            raise ConcurrentUpdateError("Record was modified by another writer; retry") from e
        except SQLAlchemyError as e:
            if outermost:
                self.db.rollback()
            _log.error(f"Store failure inside ledger transaction: {e}", exc_info=True)
            raise StoreError("Persistence failure") from e
        except Exception:
            if outermost:
                self.db.rollback()
            raise
        finally:
            self._depth -= 1

    def add(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def delete(self, obj) -> None:
        self.db.delete(obj)
        self.db.flush()

    def flush(self) -> None:
        self.db.flush()

    # Commitments

    def get_commitment(self, commitment_id: int, for_update: bool = False) -> Optional[Commitment]:
        query = self.db.query(Commitment).filter(Commitment.id == commitment_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def require_commitment(self, commitment_id: int, for_update: bool = False) -> Commitment:
        commitment = self.get_commitment(commitment_id, for_update=for_update)
        if commitment is None:
            raise NotFoundError("Commitment", commitment_id)
        return commitment

    def find_commitment(self, fund_id: int, deal_id: int) -> Optional[Commitment]:
        return (
            self.db.query(Commitment)
            .filter(Commitment.fund_id == fund_id, Commitment.deal_id == deal_id)
            .first()
        )

    def list_commitments_by_fund(self, fund_id: int) -> List[Commitment]:
        return (
            self.db.query(Commitment)
            .filter(Commitment.fund_id == fund_id)
            .order_by(Commitment.id)
            .all()
        )

    def list_commitments_by_deal(self, deal_id: int) -> List[Commitment]:
        return (
            self.db.query(Commitment)
            .filter(Commitment.deal_id == deal_id)
            .order_by(Commitment.id)
            .all()
        )

    def get_commitments_batch(self, commitment_ids: Sequence[int]) -> List[Commitment]:
        if not commitment_ids:
            return []
        return self.db.query(Commitment).filter(Commitment.id.in_(list(commitment_ids))).all()

    # Capital calls

    def get_call(self, call_id: int, for_update: bool = False) -> Optional[CapitalCall]:
        query = self.db.query(CapitalCall).filter(CapitalCall.id == call_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def require_call(self, call_id: int, for_update: bool = False) -> CapitalCall:
        call = self.get_call(call_id, for_update=for_update)
        if call is None:
            raise NotFoundError("Capital call", call_id)
        return call

    def list_calls(self, commitment_id: int, for_update: bool = False) -> List[CapitalCall]:
        query = (
            self.db.query(CapitalCall)
            .filter(CapitalCall.allocation_id == commitment_id)
            .order_by(CapitalCall.id)
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.all()

    def list_calls_in_range(self, start: date, end: date) -> List[CapitalCall]:
        return (
            self.db.query(CapitalCall)
            .filter(or_(
                CapitalCall.call_date.between(start, end),
                CapitalCall.due_date.between(start, end),
            ))
            .order_by(CapitalCall.call_date, CapitalCall.id)
            .all()
        )

    def list_open_calls(self, commitment_id: Optional[int] = None) -> List[CapitalCall]:
        query = self.db.query(CapitalCall).filter(
            CapitalCall.status.notin_(["paid", "defaulted"])
        )
        if commitment_id is not None:
            query = query.filter(CapitalCall.allocation_id == commitment_id)
        return query.order_by(CapitalCall.id).all()

    def sum_call_amounts(self, commitment_id: int) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(CapitalCall.call_amount), 0))
            .filter(CapitalCall.allocation_id == commitment_id)
            .scalar()
        )
        return Decimal(str(total))

    # Payments

    def list_payments(self, call_id: int) -> List[CapitalCallPayment]:
        return (
            self.db.query(CapitalCallPayment)
            .filter(CapitalCallPayment.capital_call_id == call_id)
            .order_by(CapitalCallPayment.id)
            .all()
        )

    def sum_payments(self, call_id: int) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(CapitalCallPayment.payment_amount), 0))
            .filter(CapitalCallPayment.capital_call_id == call_id)
            .scalar()
        )
        return Decimal(str(total))

    # Distributions

    def list_distributions(self, commitment_id: int) -> List[Distribution]:
        return (
            self.db.query(Distribution)
            .filter(Distribution.allocation_id == commitment_id)
            .order_by(Distribution.distribution_date, Distribution.id)
            .all()
        )

    # Closing schedule

    def list_closing_events_by_deal(self, deal_id: int, for_update: bool = False) -> List[ClosingScheduleEvent]:
        query = (
            self.db.query(ClosingScheduleEvent)
            .filter(ClosingScheduleEvent.deal_id == deal_id)
            .order_by(ClosingScheduleEvent.id)
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.all()
