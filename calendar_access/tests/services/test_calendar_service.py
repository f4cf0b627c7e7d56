import uuid

from django.contrib.auth.models import AnonymousUser

import pytest

from audit_logs.models import AuditLog
from audit_logs.constants import AuditSeverity
from calendar_access.constants import (
    AuditAction,
    GuestPermission,
    PermissionLevel,
    SharePermission,
)
from calendar_access.exceptions import (
    CalendarNotFoundError,
    InsufficientPermissionError,
    RateLimitedError,
    UserNotFoundError,
)
from calendar_access.factories import CalendarFactory
from calendar_access.models import Calendar, CalendarShare
from users.factories import UserFactory


@pytest.fixture
def calendar_service(di_container):
    return di_container.calendar_service()


@pytest.fixture
def staff_user():
    return UserFactory().create_user(is_staff=True)


@pytest.mark.django_db
class TestCalendarService:
    def test_create_calendar(self, calendar_service, user):
        calendar = calendar_service.create_calendar(user, "Clinic", color="#112233")

        assert calendar.owner == user
        assert calendar.color == "#112233"
        assert calendar.guest_permission == GuestPermission.NONE
        assert AuditLog.objects.filter(
            action=AuditAction.CALENDAR_CREATED, resource_id=str(calendar.id)
        ).exists()

    def test_anonymous_cannot_create(self, calendar_service):
        with pytest.raises(InsufficientPermissionError):
            calendar_service.create_calendar(AnonymousUser(), "Clinic")

    def test_calendar_creation_is_rate_limited(self, calendar_service, user):
        for index in range(20):
            calendar_service.create_calendar(user, f"Calendar {index}")

        with pytest.raises(RateLimitedError):
            calendar_service.create_calendar(user, "One too many")
        assert Calendar.objects.filter(owner=user).count() == 20

    def test_update_guest_permission_is_audited(self, calendar_service, user):
        calendar = CalendarFactory.create_calendar(owner=user)

        calendar_service.update_calendar(
            user, calendar.id, name="Front desk", guest_permission=GuestPermission.READ
        )

        calendar.refresh_from_db()
        assert calendar.name == "Front desk"
        assert calendar.guest_permission == GuestPermission.READ
        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_GUEST_PERMISSION_CHANGED)
        assert audit_log.metadata["old_permission"] == GuestPermission.NONE
        assert audit_log.metadata["new_permission"] == GuestPermission.READ

    def test_update_requires_admin(self, calendar_service, user, other_user):
        calendar = CalendarFactory.create_calendar(owner=user)
        CalendarFactory.share(calendar, other_user, SharePermission.WRITE)

        with pytest.raises(InsufficientPermissionError):
            calendar_service.update_calendar(other_user, calendar.id, name="Renamed")

        CalendarFactory.share(calendar, other_user, SharePermission.ADMIN)
        calendar_service.update_calendar(other_user, calendar.id, name="Renamed")

    def test_only_owner_deletes(self, calendar_service, user, other_user):
        calendar = CalendarFactory.create_calendar(owner=user)
        CalendarFactory.share(calendar, other_user, SharePermission.ADMIN)

        with pytest.raises(InsufficientPermissionError):
            calendar_service.delete_calendar(other_user, calendar.id)

        calendar_service.delete_calendar(user, calendar.id)
        assert not Calendar.objects.filter(id=calendar.id).exists()
        assert AuditLog.objects.filter(action=AuditAction.CALENDAR_DELETED).exists()


@pytest.mark.django_db
class TestOwnershipTransfer:
    def test_staff_transfers_ownership(
        self, di_container, calendar_service, staff_user, user, other_user
    ):
        calendar = CalendarFactory.create_calendar(owner=user)
        CalendarFactory.share(calendar, other_user, SharePermission.WRITE)

        transferred_calendar = calendar_service.transfer_ownership(
            staff_user, calendar.id, other_user.id
        )

        assert transferred_calendar.owner == other_user
        calendar.refresh_from_db()
        assert calendar.owner == other_user
        assert not CalendarShare.objects.filter(calendar=calendar, user=other_user).exists()

        resolver = di_container.permission_resolver_service()
        assert resolver.resolve(other_user, calendar.id) == PermissionLevel.OWNER
        assert resolver.resolve(user, calendar.id) == PermissionLevel.NONE

        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_OWNERSHIP_TRANSFERRED)
        assert audit_log.severity == AuditSeverity.WARNING
        assert audit_log.user_id == staff_user.id
        assert audit_log.metadata["previous_owner_id"] == str(user.id)
        assert audit_log.metadata["new_owner_id"] == str(other_user.id)
        assert audit_log.metadata["assigned_to_self"] is False

    def test_staff_adopts_orphaned_calendar(self, calendar_service, staff_user):
        calendar = CalendarFactory.create_calendar(owner=None)

        calendar_service.transfer_ownership(staff_user, calendar.id, staff_user.id)

        calendar.refresh_from_db()
        assert calendar.owner == staff_user
        audit_log = AuditLog.objects.get(action=AuditAction.CALENDAR_OWNERSHIP_TRANSFERRED)
        assert audit_log.metadata["previous_owner_id"] is None
        assert audit_log.metadata["assigned_to_self"] is True

    def test_owner_cannot_transfer_without_staff(self, calendar_service, user, other_user):
        calendar = CalendarFactory.create_calendar(owner=user)

        with pytest.raises(InsufficientPermissionError):
            calendar_service.transfer_ownership(user, calendar.id, other_user.id)
        with pytest.raises(InsufficientPermissionError):
            calendar_service.transfer_ownership(AnonymousUser(), calendar.id, other_user.id)

        calendar.refresh_from_db()
        assert calendar.owner == user
        assert not AuditLog.objects.filter(
            action=AuditAction.CALENDAR_OWNERSHIP_TRANSFERRED
        ).exists()

    def test_missing_new_owner_or_calendar(self, calendar_service, staff_user, user):
        calendar = CalendarFactory.create_calendar(owner=user)

        with pytest.raises(UserNotFoundError):
            calendar_service.transfer_ownership(staff_user, calendar.id, uuid.uuid4())
        with pytest.raises(CalendarNotFoundError):
            calendar_service.transfer_ownership(staff_user, uuid.uuid4(), user.id)

    def test_transfers_are_rate_limited(self, calendar_service, staff_user, user, other_user):
        calendar = CalendarFactory.create_calendar(owner=user)
        new_owners = [other_user, user]
        for index in range(30):
            calendar_service.transfer_ownership(staff_user, calendar.id, new_owners[index % 2].id)

        with pytest.raises(RateLimitedError):
            calendar_service.transfer_ownership(staff_user, calendar.id, other_user.id)
        calendar.refresh_from_db()
        assert calendar.owner == user

    def test_bulk_transfer(self, calendar_service, staff_user, user, other_user):
        first_calendar = CalendarFactory.create_calendar(owner=user, name="Archive")
        second_calendar = CalendarFactory.create_calendar(owner=None, name="Bulletin")

        calendars = calendar_service.bulk_transfer_ownership(
            staff_user, [first_calendar.id, second_calendar.id, uuid.uuid4()], other_user.id
        )

        assert [calendar.id for calendar in calendars] == [first_calendar.id, second_calendar.id]
        assert Calendar.objects.filter(owner=other_user).count() == 2
        audit_log = AuditLog.objects.get(action=AuditAction.CALENDARS_BULK_TRANSFERRED)
        assert audit_log.metadata["count"] == 2
        assert audit_log.metadata["previous_owners"] == [
            {"calendar_id": str(first_calendar.id), "previous_owner_id": str(user.id)},
            {"calendar_id": str(second_calendar.id), "previous_owner_id": None},
        ]

    def test_bulk_transfer_of_unknown_calendars(self, calendar_service, staff_user, other_user):
        with pytest.raises(CalendarNotFoundError):
            calendar_service.bulk_transfer_ownership(staff_user, [uuid.uuid4()], other_user.id)
