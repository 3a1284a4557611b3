from decimal import Decimal
from typing import List
from pydantic import BaseModel, Field


class SyncResult(BaseModel):
    """Outcome of a proportional rescale; ids let callers drop cached aggregates"""

    commitment_id: int
    deal_id: int
    old_amount: Decimal
    new_amount: Decimal
    ratio: Decimal
    updated_call_ids: List[int] = Field(default_factory=list)
    updated_event_ids: List[int] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.old_amount != self.new_amount
