import uuid
from unittest.mock import patch

from django.db import IntegrityError

import pytest

from audit_logs.models import AuditLog
from calendar_access.constants import (
    AuditAction,
    PermissionLevel,
    SharePermission,
    SubscriptionSource,
    SubscriptionStatus,
)
from calendar_access.exceptions import (
    CalendarShareNotFoundError,
    DuplicateShareError,
    InsufficientPermissionError,
    InvalidShareLevelError,
    RateLimitedError,
    UserNotFoundError,
)
from calendar_access.factories import CalendarFactory
from calendar_access.models import CalendarShare, CalendarSubscription
from users.factories import UserFactory


@pytest.fixture
def share_registry_service(di_container):
    return di_container.share_registry_service()


@pytest.fixture
def resolver(di_container):
    return di_container.permission_resolver_service()


@pytest.fixture
def owner(user):
    return user


@pytest.fixture
def calendar(owner):
    return CalendarFactory.create_calendar(owner=owner)


@pytest.fixture
def admin_user(calendar):
    admin_user = UserFactory().create_user()
    CalendarFactory.share(calendar, admin_user, SharePermission.ADMIN)
    return admin_user


@pytest.mark.django_db
class TestCreateOrUpdateShare:
    def test_owner_shares_calendar(self, share_registry_service, resolver, owner, other_user, calendar):
        share = share_registry_service.create_or_update_share(
            owner, calendar.id, other_user.id, SharePermission.WRITE
        )

        assert share.permission == SharePermission.WRITE
        assert share.granted_by == owner
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.WRITE

        subscription = CalendarSubscription.objects.get(user=other_user, calendar=calendar)
        assert subscription.source == SubscriptionSource.SHARED
        assert subscription.status == SubscriptionStatus.SUBSCRIBED

        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_SHARED)
        assert audit_log.resource_id == str(calendar.id)
        assert audit_log.metadata["target_user_id"] == str(other_user.id)

    def test_sharing_twice_updates_the_existing_share(
        self, share_registry_service, owner, other_user, calendar
    ):
        first_share = share_registry_service.create_or_update_share(
            owner, calendar.id, other_user.id, SharePermission.READ
        )
        second_share = share_registry_service.create_or_update_share(
            owner, calendar.id, other_user.id, SharePermission.WRITE
        )

        assert first_share.id == second_share.id
        assert CalendarShare.objects.filter(calendar=calendar, user=other_user).count() == 1
        assert second_share.permission == SharePermission.WRITE

        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_PERMISSION_CHANGED)
        assert audit_log.metadata["old_permission"] == SharePermission.READ
        assert audit_log.metadata["new_permission"] == SharePermission.WRITE

    def test_sharing_resubscribes_a_dismissed_user(
        self, share_registry_service, owner, other_user, calendar
    ):
        CalendarSubscription.objects.create(
            user=other_user,
            calendar=calendar,
            source=SubscriptionSource.GUEST,
            status=SubscriptionStatus.DISMISSED,
        )

        share_registry_service.create_or_update_share(
            owner, calendar.id, other_user.id, SharePermission.READ
        )

        subscription = CalendarSubscription.objects.get(user=other_user, calendar=calendar)
        assert subscription.status == SubscriptionStatus.SUBSCRIBED
        assert subscription.source == SubscriptionSource.SHARED

    def test_admin_can_grant_up_to_write(
        self, share_registry_service, admin_user, other_user, calendar
    ):
        share_registry_service.create_or_update_share(
            admin_user, calendar.id, other_user.id, SharePermission.WRITE
        )

        with pytest.raises(InsufficientPermissionError):
            share_registry_service.create_or_update_share(
                admin_user, calendar.id, other_user.id, SharePermission.ADMIN
            )

    def test_admin_cannot_change_another_admin(
        self, share_registry_service, admin_user, calendar
    ):
        other_admin = UserFactory().create_user()
        CalendarFactory.share(calendar, other_admin, SharePermission.ADMIN)

        with pytest.raises(InsufficientPermissionError):
            share_registry_service.create_or_update_share(
                admin_user, calendar.id, other_admin.id, SharePermission.READ
            )

    def test_owner_can_grant_admin(self, share_registry_service, owner, other_user, calendar):
        share = share_registry_service.create_or_update_share(
            owner, calendar.id, other_user.id, SharePermission.ADMIN
        )
        assert share.permission == SharePermission.ADMIN

    def test_ownership_cannot_be_shared(
        self, share_registry_service, owner, other_user, calendar
    ):
        with pytest.raises(InvalidShareLevelError):
            share_registry_service.create_or_update_share(
                owner, calendar.id, other_user.id, SharePermission.OWNER
            )
        assert not CalendarShare.objects.exists()

    def test_write_users_cannot_share(self, share_registry_service, other_user, calendar):
        CalendarFactory.share(calendar, other_user, SharePermission.WRITE)
        target_user = UserFactory().create_user()

        with pytest.raises(InsufficientPermissionError):
            share_registry_service.create_or_update_share(
                other_user, calendar.id, target_user.id, SharePermission.READ
            )

    def test_missing_target_user(self, share_registry_service, owner, calendar):
        with pytest.raises(UserNotFoundError):
            share_registry_service.create_or_update_share(
                owner, calendar.id, uuid.uuid4(), SharePermission.READ
            )

    def test_share_mutations_are_rate_limited(self, share_registry_service, owner, calendar):
        target_users = [UserFactory().create_user() for _ in range(61)]
        for target_user in target_users[:60]:
            share_registry_service.create_or_update_share(
                owner, calendar.id, target_user.id, SharePermission.READ
            )

        with pytest.raises(RateLimitedError):
            share_registry_service.create_or_update_share(
                owner, calendar.id, target_users[60].id, SharePermission.READ
            )
        assert not CalendarShare.objects.filter(user=target_users[60]).exists()

    def test_concurrent_share_is_a_duplicate(
        self, share_registry_service, owner, other_user, calendar
    ):
        with patch.object(
            CalendarShare.objects,
            "update_or_create",
            side_effect=IntegrityError("duplicate key value violates unique constraint"),
        ):
            with pytest.raises(DuplicateShareError):
                share_registry_service.create_or_update_share(
                    owner, calendar.id, other_user.id, SharePermission.READ
                )

        assert not CalendarShare.objects.filter(calendar=calendar, user=other_user).exists()
        assert not CalendarSubscription.objects.filter(
            calendar=calendar, user=other_user
        ).exists()
        assert not AuditLog.objects.filter(action=AuditAction.CALENDAR_SHARED).exists()


@pytest.mark.django_db
class TestRemoveShare:
    def test_owner_removes_share(self, share_registry_service, resolver, owner, other_user, calendar):
        share = CalendarFactory.share(calendar, other_user, SharePermission.WRITE)

        share_registry_service.remove_share(owner, calendar.id, share.id)

        assert not CalendarShare.objects.filter(id=share.id).exists()
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.NONE
        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_SHARE_REMOVED)
        assert audit_log.metadata["removed_by"] == "owner"

    def test_user_removes_own_share(self, share_registry_service, other_user, calendar):
        share = CalendarFactory.share(calendar, other_user, SharePermission.READ)

        share_registry_service.remove_share(other_user, calendar.id, share.id)

        assert not CalendarShare.objects.filter(id=share.id).exists()
        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_SHARE_REMOVED)
        assert audit_log.metadata["removed_by"] == "self"

    def test_admin_removes_write_share(
        self, share_registry_service, admin_user, other_user, calendar
    ):
        share = CalendarFactory.share(calendar, other_user, SharePermission.WRITE)

        share_registry_service.remove_share(admin_user, calendar.id, share.id)

        assert not CalendarShare.objects.filter(id=share.id).exists()

    def test_only_owner_removes_admin_shares(
        self, share_registry_service, owner, admin_user, calendar
    ):
        admin_share = CalendarShare.objects.get(calendar=calendar, user=admin_user)
        other_admin = UserFactory().create_user()
        CalendarFactory.share(calendar, other_admin, SharePermission.ADMIN)

        with pytest.raises(InsufficientPermissionError):
            share_registry_service.remove_share(other_admin, calendar.id, admin_share.id)
        with pytest.raises(InsufficientPermissionError):
            share_registry_service.remove_share(admin_user, calendar.id, admin_share.id)

        share_registry_service.remove_share(owner, calendar.id, admin_share.id)
        assert not CalendarShare.objects.filter(id=admin_share.id).exists()

    def test_read_user_cannot_remove_others(self, share_registry_service, other_user, calendar):
        CalendarFactory.share(calendar, other_user, SharePermission.READ)
        victim_share = CalendarFactory.share(
            calendar, UserFactory().create_user(), SharePermission.READ
        )

        with pytest.raises(InsufficientPermissionError):
            share_registry_service.remove_share(other_user, calendar.id, victim_share.id)

    def test_share_of_another_calendar_is_not_found(
        self, share_registry_service, owner, other_user, calendar
    ):
        other_calendar = CalendarFactory.create_calendar(owner=owner)
        share = CalendarFactory.share(other_calendar, other_user, SharePermission.READ)

        with pytest.raises(CalendarShareNotFoundError):
            share_registry_service.remove_share(owner, calendar.id, share.id)

    def test_orphaned_calendar_is_managed_by_admins(self, share_registry_service, other_user):
        calendar = CalendarFactory.create_calendar(owner=None)
        admin_user = UserFactory().create_user()
        CalendarFactory.share(calendar, admin_user, SharePermission.ADMIN)

        share = share_registry_service.create_or_update_share(
            admin_user, calendar.id, other_user.id, SharePermission.WRITE
        )
        share_registry_service.remove_share(admin_user, calendar.id, share.id)

        assert not CalendarShare.objects.filter(id=share.id).exists()
