from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class AuditEventIn(BaseModel):
    """Structured audit event published by mutating ledger operations"""

    event_type: str
    entity_type: str
    entity_id: int
    deal_id: Optional[int] = None
    user_id: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
