import datetime

from django.db.models import Q
from django.db.models.query import QuerySet


class CalendarAccessTokenQuerySet(QuerySet):
    def filter_by_calendar(self, calendar_id):
        return self.filter(calendar_id=calendar_id)

    def filter_usable(self, now: datetime.datetime):
        """
        Tokens that may still authorize access at `now`. The expiry boundary is exclusive: a token
        expiring exactly at `now` is no longer usable.
        """
        return self.filter(is_active=True).filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))


class CalendarSubscriptionQuerySet(QuerySet):
    def filter_visible(self):
        from calendar_access.constants import SubscriptionStatus

        return self.filter(status=SubscriptionStatus.SUBSCRIBED)
