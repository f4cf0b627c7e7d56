import datetime
import uuid

from django.contrib.auth.models import AnonymousUser
from django.utils import timezone

import pytest

from calendar_access.constants import (
    AccessTokenPermission,
    GuestPermission,
    PermissionLevel,
    SharePermission,
)
from calendar_access.exceptions import CalendarNotFoundError, InsufficientPermissionError
from calendar_access.factories import CalendarAccessTokenFactory, CalendarFactory
from calendar_access.services.permission_resolver_service import PermissionResolverService


@pytest.fixture
def resolver(di_container):
    return di_container.permission_resolver_service()


@pytest.fixture
def owner(user):
    return user


@pytest.fixture
def calendar(owner):
    return CalendarFactory.create_calendar(owner=owner)


@pytest.mark.django_db
class TestPermissionResolverService:
    def test_owner_gets_owner(self, resolver, owner, calendar):
        assert resolver.resolve(owner, calendar.id) == PermissionLevel.OWNER

    def test_stranger_gets_none(self, resolver, other_user, calendar):
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.NONE

    def test_anonymous_without_guest_policy_gets_none(self, resolver, calendar):
        assert resolver.resolve(AnonymousUser(), calendar.id) == PermissionLevel.NONE
        assert resolver.resolve(None, calendar.id) == PermissionLevel.NONE

    @pytest.mark.parametrize(
        "share_permission,expected",
        [
            (SharePermission.READ, PermissionLevel.READ),
            (SharePermission.WRITE, PermissionLevel.WRITE),
            (SharePermission.ADMIN, PermissionLevel.ADMIN),
        ],
    )
    def test_share_grants_its_level(
        self, resolver, other_user, calendar, share_permission, expected
    ):
        CalendarFactory.share(calendar, other_user, share_permission)
        assert resolver.resolve(other_user, calendar.id) == expected

    def test_stored_owner_share_resolves_to_admin(self, resolver, other_user, calendar):
        CalendarFactory.share(calendar, other_user, SharePermission.OWNER)
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.ADMIN

    def test_guest_policy_applies_to_signed_in_users_and_anonymous(
        self, resolver, other_user, calendar
    ):
        calendar.guest_permission = GuestPermission.READ
        calendar.save()

        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.READ
        assert resolver.resolve(AnonymousUser(), calendar.id) == PermissionLevel.READ

    def test_anonymous_guest_access_can_be_disabled(self, di_container, calendar, other_user):
        calendar.guest_permission = GuestPermission.READ
        calendar.save()
        resolver = PermissionResolverService(
            access_token_validator=di_container.access_token_validator(),
            allow_anonymous_guest_access=False,
        )

        assert resolver.resolve(AnonymousUser(), calendar.id) == PermissionLevel.NONE
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.READ

    def test_highest_grant_wins(self, resolver, other_user, calendar):
        calendar.guest_permission = GuestPermission.WRITE
        calendar.save()
        CalendarFactory.share(calendar, other_user, SharePermission.READ)

        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.WRITE

    def test_token_raises_a_lower_share(self, resolver, other_user, calendar):
        CalendarFactory.share(calendar, other_user, SharePermission.READ)
        _, secret = CalendarAccessTokenFactory.create_token(
            calendar, AccessTokenPermission.WRITE
        )

        assert resolver.resolve(other_user, calendar.id, secret) == PermissionLevel.WRITE

    def test_token_never_lowers_ownership(self, resolver, owner, calendar):
        _, secret = CalendarAccessTokenFactory.create_token(calendar, AccessTokenPermission.READ)

        assert resolver.resolve(owner, calendar.id, secret) == PermissionLevel.OWNER

    def test_token_for_another_calendar_is_ignored(self, resolver, owner, calendar):
        other_calendar = CalendarFactory.create_calendar(owner=owner)
        _, secret = CalendarAccessTokenFactory.create_token(
            other_calendar, AccessTokenPermission.WRITE
        )

        assert resolver.resolve(AnonymousUser(), calendar.id, secret) == PermissionLevel.NONE

    def test_unknown_token_is_ignored(self, resolver, calendar):
        assert resolver.resolve(None, calendar.id, "not-a-token") == PermissionLevel.NONE

    def test_expired_and_inactive_tokens_grant_nothing(self, resolver, calendar):
        _, expired_secret = CalendarAccessTokenFactory.create_token(
            calendar,
            AccessTokenPermission.WRITE,
            expires_at=timezone.now() - datetime.timedelta(seconds=1),
        )
        _, inactive_secret = CalendarAccessTokenFactory.create_token(
            calendar, AccessTokenPermission.WRITE, is_active=False
        )

        assert resolver.resolve(None, calendar.id, expired_secret) == PermissionLevel.NONE
        assert resolver.resolve(None, calendar.id, inactive_secret) == PermissionLevel.NONE

    def test_missing_calendar_raises_not_found(self, resolver, owner):
        with pytest.raises(CalendarNotFoundError):
            resolver.resolve(owner, uuid.uuid4())

    def test_orphaned_calendar_keeps_shares_and_guest_policy(self, resolver, other_user):
        calendar = CalendarFactory.create_calendar(owner=None, guest_permission=GuestPermission.READ)
        CalendarFactory.share(calendar, other_user, SharePermission.ADMIN)

        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.ADMIN
        assert resolver.resolve(None, calendar.id) == PermissionLevel.READ

    def test_deleting_the_owner_orphans_the_calendar(self, resolver, owner, other_user, calendar):
        CalendarFactory.share(calendar, other_user, SharePermission.WRITE)
        owner.delete()

        calendar.refresh_from_db()
        assert calendar.is_orphaned
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.WRITE

    def test_require_actor_level_ignores_tokens(self, resolver, other_user, calendar):
        CalendarFactory.share(calendar, other_user, SharePermission.READ)
        CalendarAccessTokenFactory.create_token(calendar, AccessTokenPermission.WRITE)

        with pytest.raises(InsufficientPermissionError):
            resolver.require_actor_level(other_user, calendar.id, PermissionLevel.WRITE)

        resolved_calendar, level = resolver.require_actor_level(
            other_user, calendar.id, PermissionLevel.READ
        )
        assert resolved_calendar == calendar
        assert level == PermissionLevel.READ

    def test_shared_guest_and_token_access_combined(self, resolver, owner, other_user, calendar):
        calendar.guest_permission = GuestPermission.READ
        calendar.save()
        CalendarFactory.share(calendar, other_user, SharePermission.WRITE)
        _, secret = CalendarAccessTokenFactory.create_token(calendar, AccessTokenPermission.READ)

        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.WRITE
        assert resolver.resolve(AnonymousUser(), calendar.id) == PermissionLevel.READ
        assert resolver.resolve(AnonymousUser(), calendar.id, secret) == PermissionLevel.READ
        assert resolver.resolve(owner, calendar.id, secret) == PermissionLevel.OWNER

    def test_closing_the_guest_policy_revokes_anonymous_access(
        self, di_container, resolver, owner, calendar
    ):
        calendar_service = di_container.calendar_service()
        calendar_service.update_calendar(owner, calendar.id, guest_permission=GuestPermission.READ)
        assert resolver.resolve(AnonymousUser(), calendar.id) == PermissionLevel.READ

        calendar_service.update_calendar(owner, calendar.id, guest_permission=GuestPermission.NONE)
        assert resolver.resolve(AnonymousUser(), calendar.id) == PermissionLevel.NONE

    @pytest.mark.parametrize(
        "guest_permission,expected",
        [
            (GuestPermission.NONE, PermissionLevel.NONE),
            (GuestPermission.READ, PermissionLevel.READ),
        ],
    )
    def test_removing_a_share_falls_back_to_the_guest_policy(
        self, di_container, resolver, owner, other_user, calendar, guest_permission, expected
    ):
        calendar.guest_permission = guest_permission
        calendar.save()
        share = CalendarFactory.share(calendar, other_user, SharePermission.WRITE)
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.WRITE

        di_container.share_registry_service().remove_share(owner, calendar.id, share.id)

        assert resolver.resolve(other_user, calendar.id) == expected

    def test_adding_grants_never_lowers_the_level(self, resolver, other_user, calendar):
        levels = [resolver.resolve(other_user, calendar.id)]

        calendar.guest_permission = GuestPermission.READ
        calendar.save()
        levels.append(resolver.resolve(other_user, calendar.id))

        _, secret = CalendarAccessTokenFactory.create_token(calendar, AccessTokenPermission.WRITE)
        levels.append(resolver.resolve(other_user, calendar.id, secret))

        CalendarFactory.share(calendar, other_user, SharePermission.ADMIN)
        levels.append(resolver.resolve(other_user, calendar.id, secret))

        assert [level.rank for level in levels] == sorted(level.rank for level in levels)
        assert levels[-1] == PermissionLevel.ADMIN
