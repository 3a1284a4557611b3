"""
Audit / timeline sink

Delivery is fire-and-forget: a failure to publish is logged and never
fails the ledger operation that produced the event.
"""
from abc import ABC, abstractmethod
import logging

from capital_ledger.schemas.audit import AuditEventIn

_log = logging.getLogger(__name__)


class AuditSink(ABC):
    def publish(self, event: AuditEventIn) -> None:
        try:
            self.deliver(event)
        except Exception as e:
            _log.warning(
                f"Audit event {event.event_type} for {event.entity_type} {event.entity_id} "
                f"was not delivered: {e}",
                exc_info=True,
            )

    @abstractmethod
    def deliver(self, event: AuditEventIn) -> None:
        ...


class CeleryAuditSink(AuditSink):
    """Queues events for the record_audit_event_task worker"""

    def deliver(self, event: AuditEventIn) -> None:
        from capital_ledger.tasks.audit import record_audit_event_task

        record_audit_event_task.delay(event.model_dump(mode="json"))
