import uuid
from unittest.mock import MagicMock, patch

import pytest

from audit_logs.constants import AuditSeverity
from audit_logs.request_context import (
    AuditRequestContext,
    reset_request_context,
    set_request_context,
)
from calendar_access.constants import AuditAction, AuditResourceType
from calendar_access.services.audit_service import AuditService
from calendar_access.services.dataclasses import AuditEventData


@pytest.fixture
def audit_event_sink():
    return MagicMock()


@pytest.fixture
def audit_service(audit_event_sink):
    return AuditService(audit_event_sink=audit_event_sink)


def get_persisted_event(audit_event_sink) -> AuditEventData:
    audit_event_sink.persist.assert_called_once()
    return audit_event_sink.persist.call_args.args[0]


@pytest.mark.parametrize(
    "helper_name,severity,is_user_visible",
    [
        ("security_event", AuditSeverity.CRITICAL, True),
        ("user_event", AuditSeverity.INFO, True),
        ("admin_event", AuditSeverity.WARNING, False),
    ],
)
def test_helpers_set_severity_and_visibility(
    audit_service, audit_event_sink, helper_name, severity, is_user_visible
):
    getattr(audit_service, helper_name)(AuditAction.CALENDAR_CREATED, AuditResourceType.CALENDAR)

    event = get_persisted_event(audit_event_sink)
    assert event.severity == severity
    assert event.is_user_visible is is_user_visible


def test_event_fields_are_serializable(audit_service, audit_event_sink):
    calendar_id = uuid.uuid4()
    user_id = uuid.uuid4()

    audit_service.user_event(
        AuditAction.CALENDAR_SHARED,
        AuditResourceType.CALENDAR,
        resource_id=calendar_id,
        user_id=user_id,
        metadata={"target_user_id": user_id, "fields": ("name",)},
    )

    event = get_persisted_event(audit_event_sink)
    assert event.action == AuditAction.CALENDAR_SHARED
    assert event.resource_id == str(calendar_id)
    assert event.user_id == str(user_id)
    assert event.metadata["target_user_id"] == str(user_id)
    assert event.metadata["fields"] == ["name"]


def test_request_context_is_attached(audit_service, audit_event_sink):
    token = set_request_context(AuditRequestContext(ip_address="10.0.0.1", user_agent="pytest"))
    try:
        audit_service.admin_event(AuditAction.RATE_LIMIT_HIT, AuditResourceType.RATE_LIMIT)
    finally:
        reset_request_context(token)

    event = get_persisted_event(audit_event_sink)
    assert event.ip_address == "10.0.0.1"
    assert event.user_agent == "pytest"


def test_correlation_id_is_attached(audit_service, audit_event_sink):
    with patch("calendar_access.services.audit_service.get_guid", return_value="guid-123"):
        audit_service.admin_event(AuditAction.RATE_LIMIT_HIT, AuditResourceType.RATE_LIMIT)

    event = get_persisted_event(audit_event_sink)
    assert event.metadata["correlation_id"] == "guid-123"


def test_sink_failure_is_swallowed(audit_service, audit_event_sink, caplog):
    audit_event_sink.persist.side_effect = RuntimeError("audit store is down")

    audit_service.security_event(AuditAction.TOKEN_REVOKED, AuditResourceType.CALENDAR_ACCESS_TOKEN)

    assert "Failed to persist audit event" in caplog.text
