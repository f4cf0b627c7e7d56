from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "severity", "user", "resource_type", "resource_id", "occurred_at")
    list_filter = ("severity", "is_user_visible", "resource_type")
    search_fields = ("action", "resource_id", "user__email")
    readonly_fields = (
        "user",
        "action",
        "resource_type",
        "resource_id",
        "metadata",
        "ip_address",
        "user_agent",
        "severity",
        "is_user_visible",
        "occurred_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
