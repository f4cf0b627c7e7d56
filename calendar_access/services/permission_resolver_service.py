import uuid
from collections.abc import Iterable
from typing import Annotated

from django.contrib.auth.models import AnonymousUser
from django.db import DatabaseError

from dependency_injector.wiring import Provide, inject

from calendar_access.constants import PermissionLevel
from calendar_access.exceptions import (
    CalendarNotFoundError,
    InsufficientPermissionError,
    StorageUnavailableError,
)
from calendar_access.grants import guest_grant, ownership_grant, share_grant, token_grant
from calendar_access.models import Calendar, CalendarShare, CalendarSubscription
from calendar_access.services.access_token_validator import AccessTokenValidator
from users.models import User


Actor = User | AnonymousUser | None


def get_actor_id(actor: Actor) -> uuid.UUID | None:
    if actor is None or not actor.is_authenticated:
        return None
    return actor.pk


def normalize_presented_tokens(presented_tokens: str | Iterable[str] | None) -> list[str]:
    if not presented_tokens:
        return []
    if isinstance(presented_tokens, str):
        return [presented_tokens]
    return [secret for secret in presented_tokens if secret]


class PermissionResolverService:
    """
    Computes the effective permission of an actor on a calendar as the highest level granted by
    ownership, the actor's share, the guest policy and the usable access tokens the actor
    presented or previously redeemed.

    Administrative checks (`require_actor_level`) only look at what the actor's identity grants,
    so a token can never authorize a mutation.
    """

    @inject
    def __init__(
        self,
        access_token_validator: Annotated[
            AccessTokenValidator, Provide["access_token_validator"]
        ],
        allow_anonymous_guest_access: Annotated[
            bool, Provide["config.CALENDAR_ACCESS_ALLOW_ANONYMOUS_GUEST_ACCESS"]
        ] = True,
    ):
        self.access_token_validator = access_token_validator
        self.allow_anonymous_guest_access = allow_anonymous_guest_access

    def get_calendar(self, calendar_id: uuid.UUID | str) -> Calendar:
        try:
            calendar = Calendar.objects.filter(id=calendar_id).first()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        if calendar is None:
            raise CalendarNotFoundError()
        return calendar

    def get_share_permission(self, actor_id: uuid.UUID | None, calendar: Calendar) -> str | None:
        if actor_id is None:
            return None
        try:
            return (
                CalendarShare.objects.filter(calendar_id=calendar.id, user_id=actor_id)
                .values_list("permission", flat=True)
                .first()
            )
        except DatabaseError as e:
            raise StorageUnavailableError() from e

    def get_linked_token_grant(
        self, actor_id: uuid.UUID | None, calendar: Calendar
    ) -> PermissionLevel | None:
        """
        Grant of the token the actor redeemed for this calendar, while that token stays usable.
        """
        if actor_id is None:
            return None
        try:
            token_id = (
                CalendarSubscription.objects.filter(calendar_id=calendar.id, user_id=actor_id)
                .values_list("access_token_id", flat=True)
                .first()
            )
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return token_grant(self.access_token_validator.validate_stored(token_id), calendar)

    def resolve(
        self,
        actor: Actor,
        calendar_id: uuid.UUID | str,
        presented_tokens: str | Iterable[str] | None = None,
    ) -> PermissionLevel:
        """
        Resolve the effective permission of `actor` on a calendar.
        :param actor: The authenticated user, or None/AnonymousUser for guests.
        :param calendar_id: ID of the calendar.
        :param presented_tokens: Access token secret(s) presented with the request, if any.
        :return: The highest PermissionLevel granted by any mechanism.
        """
        calendar = self.get_calendar(calendar_id)
        return self.resolve_for_calendar(actor, calendar, presented_tokens)

    def resolve_for_calendar(
        self,
        actor: Actor,
        calendar: Calendar,
        presented_tokens: str | Iterable[str] | None = None,
    ) -> PermissionLevel:
        validated_tokens = self.access_token_validator.validate_many(
            normalize_presented_tokens(presented_tokens), calendar_id=calendar.id
        )
        return PermissionLevel.highest(
            (
                self.resolve_actor_level(actor, calendar),
                self.get_linked_token_grant(get_actor_id(actor), calendar),
                *(token_grant(validated_token, calendar) for validated_token in validated_tokens),
            )
        )

    def resolve_actor_level(self, actor: Actor, calendar: Calendar) -> PermissionLevel:
        """
        Resolve what the actor's identity alone grants: ownership, share and guest policy.
        """
        actor_id = get_actor_id(actor)
        return PermissionLevel.highest(
            (
                ownership_grant(actor_id, calendar),
                share_grant(self.get_share_permission(actor_id, calendar)),
                guest_grant(
                    calendar,
                    is_anonymous=actor_id is None,
                    allow_anonymous_guest_access=self.allow_anonymous_guest_access,
                ),
            )
        )

    def require_actor_level(
        self,
        actor: Actor,
        calendar_id: uuid.UUID | str,
        minimum: PermissionLevel,
    ) -> tuple[Calendar, PermissionLevel]:
        """
        Ensure the actor's identity-based level is at least `minimum`.
        :return: The calendar and the actor's resolved level.
        :raises CalendarNotFoundError: if the calendar does not exist.
        :raises InsufficientPermissionError: if the level is too low.
        """
        calendar = self.get_calendar(calendar_id)
        level = self.resolve_actor_level(actor, calendar)
        if not level.at_least(minimum):
            raise InsufficientPermissionError()
        return calendar, level
