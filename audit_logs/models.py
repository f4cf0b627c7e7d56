from django.conf import settings
from django.db import models

from audit_logs.constants import AuditSeverity
from common.models import BaseModel


class AuditLog(BaseModel):
    """
    Persisted audit trail entry. Rows are written asynchronously and are never updated.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=100, db_index=True)
    resource_type = models.CharField(max_length=50, blank=True)
    resource_id = models.CharField(max_length=64, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    severity = models.CharField(
        max_length=10, choices=AuditSeverity.choices, default=AuditSeverity.INFO
    )
    is_user_visible = models.BooleanField(default=False)
    occurred_at = models.DateTimeField(db_index=True)

    class Meta:
        ordering = ("-occurred_at",)
        indexes = (models.Index(fields=("user", "occurred_at"), name="audit_log_user_time_idx"),)

    def __str__(self):
        return f"{self.action} ({self.severity}) at {self.occurred_at:%Y-%m-%d %H:%M:%S}"
