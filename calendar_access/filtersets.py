from django_filters import rest_framework as filters

from calendar_access.constants import SharePermission
from calendar_access.models import CalendarShare


class CalendarShareFilterSet(filters.FilterSet):
    permission = filters.ChoiceFilter(
        field_name="permission",
        choices=SharePermission.choices,
        label="Filter by share permission",
    )
    user = filters.UUIDFilter(
        field_name="user_id",
        label="Filter by shared user ID",
    )
    user_email = filters.CharFilter(
        field_name="user__email",
        lookup_expr="icontains",
        label="Filter by partial email match",
    )

    class Meta:
        model = CalendarShare
        fields = ("permission", "user", "user_email")
