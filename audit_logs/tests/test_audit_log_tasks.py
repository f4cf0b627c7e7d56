import datetime
import uuid

from django.test import RequestFactory

import pytest

from audit_logs.constants import AuditSeverity
from audit_logs.models import AuditLog
from audit_logs.request_context import build_request_context, get_client_ip
from audit_logs.tasks import persist_audit_event


@pytest.mark.django_db
class TestPersistAuditEvent:
    def test_persists_event(self, user):
        occurred_at = datetime.datetime(2026, 3, 1, 12, 30, tzinfo=datetime.UTC)

        audit_log_id = persist_audit_event(
            {
                "action": "calendar.shared",
                "resource_type": "calendar",
                "resource_id": "calendar-1",
                "user_id": str(user.id),
                "severity": AuditSeverity.INFO,
                "is_user_visible": True,
                "metadata": {"permission": "read"},
                "ip_address": "10.0.0.1",
                "user_agent": "pytest",
                "timestamp": occurred_at.isoformat(),
            }
        )

        audit_log = AuditLog.objects.get(id=audit_log_id)
        assert audit_log.user == user
        assert audit_log.action == "calendar.shared"
        assert audit_log.metadata == {"permission": "read"}
        assert audit_log.ip_address == "10.0.0.1"
        assert audit_log.occurred_at == occurred_at
        assert audit_log.is_user_visible

    def test_missing_user_is_not_linked(self):
        audit_log_id = persist_audit_event(
            {"action": "rate_limit_hit", "user_id": str(uuid.uuid4())}
        )

        audit_log = AuditLog.objects.get(id=audit_log_id)
        assert audit_log.user is None
        assert audit_log.severity == AuditSeverity.INFO
        assert audit_log.resource_id == ""


def test_client_ip_prefers_forwarded_header():
    request = RequestFactory().get(
        "/", HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1", REMOTE_ADDR="10.0.0.2"
    )
    assert get_client_ip(request) == "203.0.113.5"


def test_build_request_context():
    request = RequestFactory().get("/", REMOTE_ADDR="10.0.0.2", HTTP_USER_AGENT="pytest")

    request_context = build_request_context(request)

    assert request_context.ip_address == "10.0.0.2"
    assert request_context.user_agent == "pytest"
