"""Django admin interface for calendars and their access grants."""

from django.contrib import admin
from django.http import HttpRequest

from calendar_access.models import (
    Calendar,
    CalendarAccessToken,
    CalendarShare,
    CalendarSubscription,
)


class CalendarShareInline(admin.TabularInline):
    model = CalendarShare
    fk_name = "calendar"
    fields = ("user", "permission", "granted_by", "created")
    readonly_fields = ("granted_by", "created")
    raw_id_fields = ("user",)
    extra = 0


class CalendarAccessTokenInline(admin.TabularInline):
    """Tokens are listed by preview only; secrets are never stored."""

    model = CalendarAccessToken
    fields = ("name", "token_preview", "permission", "expires_at", "is_active", "usage_count")
    readonly_fields = ("token_preview", "usage_count")
    extra = 0

    def has_add_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(Calendar)
class CalendarAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "owner", "guest_permission", "created")
    list_filter = ("guest_permission",)
    search_fields = ("name", "owner__email")
    raw_id_fields = ("owner",)
    inlines = (CalendarShareInline, CalendarAccessTokenInline)


@admin.register(CalendarAccessToken)
class CalendarAccessTokenAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "calendar",
        "name",
        "token_preview",
        "permission",
        "is_active",
        "expires_at",
        "last_used_at",
        "usage_count",
    )
    list_filter = ("permission", "is_active")
    search_fields = ("name", "token_preview", "calendar__name")
    readonly_fields = (
        "token_hash",
        "token_preview",
        "created_by",
        "last_used_at",
        "usage_count",
        "created",
        "modified",
    )
    raw_id_fields = ("calendar",)

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False


@admin.register(CalendarSubscription)
class CalendarSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "calendar", "source", "status", "modified")
    list_filter = ("source", "status")
    search_fields = ("user__email", "calendar__name")
    raw_id_fields = ("user", "calendar", "access_token")
