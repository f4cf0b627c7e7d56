import dataclasses
import logging
from typing import Annotated, Any

from dependency_injector.wiring import Provide, inject
from django_guid import get_guid

from audit_logs.constants import AuditSeverity
from audit_logs.request_context import get_request_context
from calendar_access.services.dataclasses import AuditEventData
from calendar_access.services.protocols.audit_event_sink import AuditEventSink


logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("calendar_access.audit")


class AuditService:
    """
    Emits audit events for security relevant state changes. Emitting is fire-and-forget: a sink
    failure is logged and never reaches the audited operation.
    """

    @inject
    def __init__(
        self,
        audit_event_sink: Annotated[AuditEventSink, Provide["audit_event_sink"]],
    ):
        self.audit_event_sink = audit_event_sink

    def emit(self, event: AuditEventData) -> None:
        if event.ip_address is None and event.user_agent is None:
            request_context = get_request_context()
            event = dataclasses.replace(
                event,
                ip_address=request_context.ip_address,
                user_agent=request_context.user_agent,
            )
        correlation_id = get_guid()
        if correlation_id and "correlation_id" not in event.metadata:
            event.metadata["correlation_id"] = correlation_id

        audit_logger.info(
            "%s on %s %s by user %s (%s)",
            event.action,
            event.resource_type,
            event.resource_id,
            event.user_id,
            event.severity,
        )
        try:
            self.audit_event_sink.persist(event)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist audit event %s", event.action)

    def _build_and_emit(
        self,
        action: str,
        severity: AuditSeverity,
        is_user_visible: bool,
        resource_type: str,
        resource_id: Any = None,
        user_id: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.emit(
            AuditEventData(
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                user_id=str(user_id) if user_id is not None else None,
                severity=severity.value,
                is_user_visible=is_user_visible,
                metadata=_json_safe(metadata or {}),
            )
        )

    def security_event(self, action: str, resource_type: str, **kwargs) -> None:
        self._build_and_emit(action, AuditSeverity.CRITICAL, True, resource_type, **kwargs)

    def user_event(self, action: str, resource_type: str, **kwargs) -> None:
        self._build_and_emit(action, AuditSeverity.INFO, True, resource_type, **kwargs)

    def admin_event(self, action: str, resource_type: str, **kwargs) -> None:
        self._build_and_emit(action, AuditSeverity.WARNING, False, resource_type, **kwargs)


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_json_safe(item) for item in value]
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
