import datetime
import logging

from django.contrib.auth import get_user_model

from audit_logs.models import AuditLog
from calendar_access_api.celery import app


logger = logging.getLogger(__name__)


@app.task
def persist_audit_event(event: dict) -> str:
    """
    Write one audit event. `event` is the json-serialized form of `AuditEventData`.
    """
    user_id = event.get("user_id")
    if user_id and not get_user_model().objects.filter(pk=user_id).exists():
        logger.info("Audit event %s references missing user %s", event["action"], user_id)
        user_id = None

    occurred_at = event.get("timestamp")
    audit_log = AuditLog.objects.create(
        user_id=user_id,
        action=event["action"],
        resource_type=event.get("resource_type") or "",
        resource_id=event.get("resource_id") or "",
        metadata=event.get("metadata") or {},
        ip_address=event.get("ip_address"),
        user_agent=event.get("user_agent") or "",
        severity=event.get("severity") or "info",
        is_user_visible=bool(event.get("is_user_visible")),
        occurred_at=(
            datetime.datetime.fromisoformat(occurred_at)
            if occurred_at
            else datetime.datetime.now(tz=datetime.UTC)
        ),
    )
    return str(audit_log.pk)
