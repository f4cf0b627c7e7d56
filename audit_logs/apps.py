from django.apps import AppConfig


class AuditLogsConfig(AppConfig):
    name = "audit_logs"
    verbose_name = "Audit logs"
