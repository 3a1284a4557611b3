from capital_ledger.celery import celery_app
from capital_ledger.db.session import SessionLocal
from capital_ledger.models.audit import AuditEvent


@celery_app.task
def record_audit_event_task(event: dict):
    """Background task to persist one activity-feed event"""
    db = SessionLocal()

    try:
        db.add(AuditEvent(**event))
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
