from typing import Protocol

from calendar_access.services.dataclasses import AuditEventData


class AuditEventSink(Protocol):
    def persist(self, event: AuditEventData) -> None:
        """
        Hand an audit event over to durable storage. May raise; the audit service logs failures
        and never propagates them.
        """
        ...
