from django.db import models

from calendar_access.querysets import CalendarAccessTokenQuerySet, CalendarSubscriptionQuerySet


class CalendarAccessTokenManager(models.Manager.from_queryset(CalendarAccessTokenQuerySet)):  # type: ignore
    pass


class CalendarSubscriptionManager(models.Manager.from_queryset(CalendarSubscriptionQuerySet)):  # type: ignore
    pass
