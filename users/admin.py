from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.db.models import Count, QuerySet
from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _

from calendar_access.models import CalendarShare

from .models import User


class ReceivedCalendarShareInline(admin.TabularInline):
    """Calendars other people shared with this user."""

    model = CalendarShare
    fk_name = "user"
    verbose_name_plural = _("Calendars shared with this user")
    fields = ("calendar", "permission", "granted_by", "created")
    readonly_fields = ("calendar", "permission", "granted_by", "created")
    extra = 0

    def has_add_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(User)
class CustomUserAdmin(UserAdmin):
    list_display = ("id", "email", "owned_calendars_count", "is_active", "created")
    list_filter = ("is_active", "is_staff")
    search_fields = ("email",)
    ordering = ("email",)
    readonly_fields = ("last_login", "created", "modified")
    inlines = (ReceivedCalendarShareInline,)

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (_("Access"), {"fields": ("is_active", "is_staff", "is_superuser")}),
        (_("Dates"), {"fields": ("last_login", "created", "modified")}),
    )
    add_fieldsets = ((None, {"classes": ("wide",), "fields": ("email", "password1", "password2")}),)

    def get_queryset(self, request: HttpRequest) -> QuerySet[User]:
        return super().get_queryset(request).annotate(_owned_calendars_count=Count("owned_calendars"))

    @admin.display(description=_("Owned calendars"), ordering="_owned_calendars_count")
    def owned_calendars_count(self, obj: User) -> int:
        return obj._owned_calendars_count
