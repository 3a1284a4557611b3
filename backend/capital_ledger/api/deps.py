from fastapi import Depends
from sqlalchemy.orm import Session

from capital_ledger.db.session import get_db
from capital_ledger.services.audit import AuditSink, CeleryAuditSink
from capital_ledger.services.ledger import CapitalLedger


def get_audit_sink() -> AuditSink:
    return CeleryAuditSink()


def get_ledger(
    db: Session = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> CapitalLedger:
    return CapitalLedger(db, audit_sink=audit_sink)
