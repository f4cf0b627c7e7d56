import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable
from typing import Annotated

from django.db import IntegrityError, transaction
from django.db.models import Q

from dependency_injector.wiring import Provide, inject

from calendar_access.constants import (
    GuestPermission,
    PermissionLevel,
    SubscriptionSource,
    SubscriptionStatus,
)
from calendar_access.exceptions import CalendarNotFoundError, InsufficientPermissionError
from calendar_access.grants import token_grant
from calendar_access.models import Calendar, CalendarShare, CalendarSubscription
from calendar_access.services.dataclasses import AccessibleCalendarData, ValidatedAccessToken
from calendar_access.services.permission_resolver_service import (
    Actor,
    PermissionResolverService,
    get_actor_id,
    normalize_presented_tokens,
)
from users.models import User


logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Bookkeeping of which calendars show up in a user's list. Subscriptions grant nothing by
    themselves; a redeemed token linked to one keeps granting its own level while usable.
    """

    @inject
    def __init__(
        self,
        permission_resolver_service: Annotated[
            PermissionResolverService, Provide["permission_resolver_service"]
        ],
    ):
        self.permission_resolver_service = permission_resolver_service

    def record_subscription(
        self,
        user: User,
        calendar: Calendar,
        source: SubscriptionSource,
        access_token_id: uuid.UUID | None = None,
    ) -> CalendarSubscription:
        """
        Upsert the subscription of `user` to `calendar`.
        A share always (re)subscribes the user. Guest and token access only create the row when it
        is missing, so an earlier dismissal is kept. A redeemed token is linked to the row either
        way, replacing any token linked before.
        """
        if source == SubscriptionSource.SHARED:
            subscription, _ = CalendarSubscription.objects.update_or_create(
                user=user,
                calendar=calendar,
                defaults={"source": source, "status": SubscriptionStatus.SUBSCRIBED},
            )
            return subscription

        try:
            with transaction.atomic():
                subscription, _ = CalendarSubscription.objects.get_or_create(
                    user=user,
                    calendar=calendar,
                    defaults={
                        "source": source,
                        "status": SubscriptionStatus.SUBSCRIBED,
                        "access_token_id": access_token_id,
                    },
                )
        except IntegrityError:
            subscription = CalendarSubscription.objects.get(user=user, calendar=calendar)

        if access_token_id is not None and subscription.access_token_id != access_token_id:
            subscription.access_token_id = access_token_id
            subscription.save(update_fields=["access_token", "modified"])
        return subscription

    def _get_readable_calendar(self, user: User, calendar_id: uuid.UUID | str) -> Calendar:
        calendar = self.permission_resolver_service.get_calendar(calendar_id)
        level = self.permission_resolver_service.resolve_for_calendar(user, calendar)
        if not level.at_least(PermissionLevel.READ):
            raise CalendarNotFoundError()
        return calendar

    def dismiss(self, user: User, calendar_id: uuid.UUID | str) -> CalendarSubscription:
        calendar = self.permission_resolver_service.get_calendar(calendar_id)
        if calendar.owner_id == user.pk:
            raise InsufficientPermissionError("You cannot dismiss a calendar you own")
        calendar = self._get_readable_calendar(user, calendar.id)

        source = self._infer_source(user, calendar)
        subscription, _ = CalendarSubscription.objects.update_or_create(
            user=user,
            calendar=calendar,
            defaults={"status": SubscriptionStatus.DISMISSED},
            create_defaults={"source": source, "status": SubscriptionStatus.DISMISSED},
        )
        logger.info("User %s dismissed calendar %s", user.pk, calendar.id)
        return subscription

    def subscribe(self, user: User, calendar_id: uuid.UUID | str) -> CalendarSubscription:
        calendar = self._get_readable_calendar(user, calendar_id)
        source = self._infer_source(user, calendar)
        subscription, _ = CalendarSubscription.objects.update_or_create(
            user=user,
            calendar=calendar,
            defaults={"status": SubscriptionStatus.SUBSCRIBED},
            create_defaults={"source": source, "status": SubscriptionStatus.SUBSCRIBED},
        )
        logger.info("User %s subscribed to calendar %s", user.pk, calendar.id)
        return subscription

    def _infer_source(self, user: User, calendar: Calendar) -> SubscriptionSource:
        if CalendarShare.objects.filter(calendar=calendar, user=user).exists():
            return SubscriptionSource.SHARED
        existing_source = (
            CalendarSubscription.objects.filter(calendar=calendar, user=user)
            .values_list("source", flat=True)
            .first()
        )
        if existing_source:
            return SubscriptionSource(existing_source)
        return SubscriptionSource.GUEST

    def list_accessible_calendars(
        self, user: Actor, presented_tokens: Iterable[str] = ()
    ) -> list[AccessibleCalendarData]:
        """
        Calendars visible to the caller, each with the caller's effective level.
        For users: owned and shared calendars plus those subscribed through the guest policy or a
        redeemed token, minus dismissed ones (owned calendars cannot be dismissed). For anonymous
        callers: calendars with a guest policy. Calendars reachable through a presented valid
        token are added, unless the user dismissed them.
        """
        actor_id = get_actor_id(user)
        resolver = self.permission_resolver_service
        subscriptions: dict[uuid.UUID, CalendarSubscription] = {}
        if actor_id is None:
            candidates = Q(guest_permission__in=(GuestPermission.READ, GuestPermission.WRITE))
        else:
            user_subscriptions = CalendarSubscription.objects.filter(user_id=actor_id)
            subscriptions = {
                subscription.calendar_id: subscription for subscription in user_subscriptions
            }
            candidates = (
                Q(owner_id=actor_id)
                | Q(shares__user_id=actor_id)
                | Q(id__in=user_subscriptions.filter_visible().values("calendar_id"))
            )

        presented_by_calendar: dict[uuid.UUID, list[ValidatedAccessToken]] = defaultdict(list)
        for validated_token in resolver.access_token_validator.validate_many(
            normalize_presented_tokens(presented_tokens)
        ):
            presented_by_calendar[validated_token.calendar_id].append(validated_token)

        accessible_calendars: list[AccessibleCalendarData] = []
        calendars = Calendar.objects.filter(candidates | Q(id__in=list(presented_by_calendar)))
        for calendar in calendars.distinct().order_by("name"):
            subscription = subscriptions.get(calendar.id)
            is_dismissed = (
                subscription is not None and subscription.status == SubscriptionStatus.DISMISSED
            )
            if is_dismissed and calendar.owner_id != actor_id:
                continue

            linked_token = resolver.access_token_validator.validate_stored(
                subscription.access_token_id if subscription else None
            )
            level = PermissionLevel.highest(
                (
                    resolver.resolve_actor_level(user, calendar),
                    token_grant(linked_token, calendar),
                    *(
                        token_grant(validated_token, calendar)
                        for validated_token in presented_by_calendar.get(calendar.id, ())
                    ),
                )
            )
            if level == PermissionLevel.NONE:
                continue

            accessible_calendars.append(
                AccessibleCalendarData(
                    calendar_id=calendar.id,
                    name=calendar.name,
                    color=calendar.color,
                    level=level,
                    source=SubscriptionSource(subscription.source) if subscription else None,
                    is_owner=actor_id is not None and calendar.owner_id == actor_id,
                )
            )
        return accessible_calendars
