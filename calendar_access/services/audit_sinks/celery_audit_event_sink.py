import dataclasses

from calendar_access.services.dataclasses import AuditEventData


class CeleryAuditEventSink:
    """
    Persists audit events into the `audit_logs` app through a celery task, so the audited
    operation never waits on the audit write.
    """

    def persist(self, event: AuditEventData) -> None:
        from audit_logs.tasks import persist_audit_event

        payload = dataclasses.asdict(event)
        payload["timestamp"] = event.timestamp.isoformat()
        persist_audit_event.delay(payload)  # type: ignore
