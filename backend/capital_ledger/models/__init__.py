from capital_ledger.models.fund import Fund
from capital_ledger.models.deal import Deal
from capital_ledger.models.commitment import Commitment
from capital_ledger.models.transaction import CapitalCall, CapitalCallPayment, Distribution
from capital_ledger.models.closing_schedule import ClosingScheduleEvent
from capital_ledger.models.audit import AuditEvent

__all__ = [
    "Fund",
    "Deal",
    "Commitment",
    "CapitalCall",
    "CapitalCallPayment",
    "Distribution",
    "ClosingScheduleEvent",
    "AuditEvent",
]
