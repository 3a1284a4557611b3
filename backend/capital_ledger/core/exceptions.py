"""
Ledger error hierarchy

Business-rule violations (ValidationError, ConflictError) carry a message
meant for the caller. StoreError wraps persistence failures and is surfaced
as an opaque failure. SyncError is raised when a proportional rescale is
aborted and keeps the ids that were rescaled before the failure.
"""
from typing import List, Optional


class LedgerError(Exception):
    """Base class for every ledger error"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Malformed or out-of-bounds input"""


class NotFoundError(LedgerError):
    """Referenced commitment, call, fund or deal does not exist"""

    def __init__(self, entity: str, entity_id: int):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(LedgerError):
    """Operation violates a lifecycle rule"""


class ConcurrentUpdateError(ConflictError):
    """A versioned row was modified by another writer"""


class SyncError(LedgerError):
    """Proportional rescale aborted part way through; nothing was persisted"""

    def __init__(
        self,
        message: str,
        completed_call_ids: Optional[List[int]] = None,
        completed_event_ids: Optional[List[int]] = None,
    ):
        super().__init__(message)
        self.completed_call_ids = list(completed_call_ids or [])
        self.completed_event_ids = list(completed_event_ids or [])


class StoreError(LedgerError):
    """Underlying persistence failure"""
