from common.types import RouteDict

from .views import (
    AccessTokenViewSet,
    CalendarAccessTokenViewSet,
    CalendarShareViewSet,
    CalendarSubscriptionViewSet,
    CalendarViewSet,
)


CALENDAR_ID_REGEX = r"(?P<calendar_id>[0-9a-fA-F-]{36})"

routes: list[RouteDict] = [
    {
        "regex": r"calendars",
        "viewset": CalendarViewSet,
        "basename": "Calendars",
    },
    {
        "regex": rf"calendars/{CALENDAR_ID_REGEX}/shares",
        "viewset": CalendarShareViewSet,
        "basename": "CalendarShares",
    },
    {
        "regex": rf"calendars/{CALENDAR_ID_REGEX}/access-tokens",
        "viewset": CalendarAccessTokenViewSet,
        "basename": "CalendarAccessTokens",
    },
    {
        "regex": r"access-tokens",
        "viewset": AccessTokenViewSet,
        "basename": "AccessTokens",
    },
    {
        "regex": r"calendar-subscriptions",
        "viewset": CalendarSubscriptionViewSet,
        "basename": "CalendarSubscriptions",
    },
]
