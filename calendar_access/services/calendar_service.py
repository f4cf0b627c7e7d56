import logging
import uuid
from collections.abc import Sequence
from typing import Annotated, Any

from django.db import DatabaseError, transaction

from dependency_injector.wiring import Provide, inject

from calendar_access.constants import (
    AuditAction,
    AuditResourceType,
    GuestPermission,
    PermissionLevel,
    RateLimitedAction,
)
from calendar_access.exceptions import (
    CalendarNotFoundError,
    InsufficientPermissionError,
    StorageUnavailableError,
    UserNotFoundError,
)
from calendar_access.models import Calendar, CalendarShare
from calendar_access.services.audit_service import AuditService
from calendar_access.services.permission_resolver_service import (
    Actor,
    PermissionResolverService,
    get_actor_id,
)
from calendar_access.services.rate_limiter_service import RateLimiterService
from users.models import User


logger = logging.getLogger(__name__)

UPDATABLE_CALENDAR_FIELDS = frozenset({"name", "color", "guest_permission"})


class CalendarService:
    @inject
    def __init__(
        self,
        permission_resolver_service: Annotated[
            PermissionResolverService, Provide["permission_resolver_service"]
        ],
        rate_limiter_service: Annotated[RateLimiterService, Provide["rate_limiter_service"]],
        audit_service: Annotated[AuditService, Provide["audit_service"]],
    ):
        self.permission_resolver_service = permission_resolver_service
        self.rate_limiter_service = rate_limiter_service
        self.audit_service = audit_service

    def create_calendar(
        self,
        actor: Actor,
        name: str,
        color: str | None = None,
        guest_permission: GuestPermission | str = GuestPermission.NONE,
    ) -> Calendar:
        """
        Create a calendar owned by `actor`.
        :raises InsufficientPermissionError: for anonymous callers.
        :raises RateLimitedError: when the actor created too many calendars recently.
        """
        actor_id = get_actor_id(actor)
        if actor_id is None:
            raise InsufficientPermissionError("You must be signed in to create a calendar")
        guest_permission = GuestPermission(guest_permission)
        self.rate_limiter_service.enforce(actor_id, RateLimitedAction.CALENDAR_CREATION)

        calendar_kwargs: dict[str, Any] = {
            "name": name,
            "owner_id": actor_id,
            "guest_permission": guest_permission,
        }
        if color:
            calendar_kwargs["color"] = color
        try:
            calendar = Calendar.objects.create(**calendar_kwargs)
        except DatabaseError as e:
            raise StorageUnavailableError() from e

        logger.info("Calendar %s created by user %s", calendar.id, actor_id)
        self.audit_service.user_event(
            AuditAction.CALENDAR_CREATED,
            AuditResourceType.CALENDAR,
            resource_id=calendar.id,
            user_id=actor_id,
            metadata={"name": calendar.name, "guest_permission": calendar.guest_permission},
        )
        return calendar

    def update_calendar(
        self, actor: Actor, calendar_id: uuid.UUID | str, **changes: Any
    ) -> Calendar:
        unknown_fields = set(changes) - UPDATABLE_CALENDAR_FIELDS
        if unknown_fields:
            raise ValueError(f"Cannot update calendar fields: {sorted(unknown_fields)}")

        calendar, _ = self.permission_resolver_service.require_actor_level(
            actor, calendar_id, PermissionLevel.ADMIN
        )
        if "guest_permission" in changes:
            changes["guest_permission"] = GuestPermission(changes["guest_permission"])

        previous_guest_permission = calendar.guest_permission
        changed_fields = [
            field_name
            for field_name, value in changes.items()
            if getattr(calendar, field_name) != value
        ]
        if not changed_fields:
            return calendar

        for field_name in changed_fields:
            setattr(calendar, field_name, changes[field_name])
        try:
            calendar.save(update_fields=[*changed_fields, "modified"])
        except DatabaseError as e:
            raise StorageUnavailableError() from e

        if "guest_permission" in changed_fields:
            logger.info(
                "Guest permission of calendar %s changed from %s to %s",
                calendar.id,
                previous_guest_permission,
                calendar.guest_permission,
            )
            self.audit_service.user_event(
                AuditAction.CALENDAR_GUEST_PERMISSION_CHANGED,
                AuditResourceType.CALENDAR,
                resource_id=calendar.id,
                user_id=get_actor_id(actor),
                metadata={
                    "old_permission": previous_guest_permission,
                    "new_permission": calendar.guest_permission,
                },
            )
        return calendar

    def delete_calendar(self, actor: Actor, calendar_id: uuid.UUID | str) -> None:
        """Only the owner may delete a calendar. Shares, tokens and subscriptions go with it."""
        calendar, _ = self.permission_resolver_service.require_actor_level(
            actor, calendar_id, PermissionLevel.OWNER
        )
        deleted_calendar_id = calendar.id
        calendar_name = calendar.name
        try:
            calendar.delete()
        except DatabaseError as e:
            raise StorageUnavailableError() from e

        logger.info("Calendar %s deleted by user %s", deleted_calendar_id, get_actor_id(actor))
        self.audit_service.security_event(
            AuditAction.CALENDAR_DELETED,
            AuditResourceType.CALENDAR,
            resource_id=deleted_calendar_id,
            user_id=get_actor_id(actor),
            metadata={"name": calendar_name},
        )

    def _require_staff(self, actor: Actor) -> uuid.UUID:
        actor_id = get_actor_id(actor)
        if actor_id is None or not actor.is_staff:
            raise InsufficientPermissionError("Admin access required")
        return actor_id

    def _get_new_owner(self, new_owner_id: uuid.UUID | str) -> User:
        new_owner = User.objects.filter(id=new_owner_id, is_active=True).first()
        if new_owner is None:
            raise UserNotFoundError()
        return new_owner

    @staticmethod
    def _assign_owner(calendars: Sequence[Calendar], new_owner: User) -> None:
        # an owner holds no share on their own calendar
        calendar_ids = [calendar.id for calendar in calendars]
        try:
            with transaction.atomic():
                Calendar.objects.filter(id__in=calendar_ids).update(owner=new_owner)
                CalendarShare.objects.filter(calendar_id__in=calendar_ids, user=new_owner).delete()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        for calendar in calendars:
            calendar.owner = new_owner

    def transfer_ownership(
        self, actor: Actor, calendar_id: uuid.UUID | str, new_owner_id: uuid.UUID | str
    ) -> Calendar:
        """
        Give a calendar to another user. Staff only; also the way to adopt orphaned calendars.
        :raises InsufficientPermissionError: when the actor is not staff.
        :raises UserNotFoundError: when the new owner does not exist or is inactive.
        :raises RateLimitedError: when the actor transferred too many calendars recently.
        """
        actor_id = self._require_staff(actor)
        self.rate_limiter_service.enforce(actor_id, RateLimitedAction.OWNERSHIP_TRANSFER)
        new_owner = self._get_new_owner(new_owner_id)
        calendar = self.permission_resolver_service.get_calendar(calendar_id)

        previous_owner_id = calendar.owner_id
        self._assign_owner([calendar], new_owner)

        logger.warning(
            "Calendar %s transferred from user %s to user %s by staff user %s",
            calendar.id,
            previous_owner_id,
            new_owner.pk,
            actor_id,
        )
        self.audit_service.admin_event(
            AuditAction.CALENDAR_OWNERSHIP_TRANSFERRED,
            AuditResourceType.CALENDAR,
            resource_id=calendar.id,
            user_id=actor_id,
            metadata={
                "name": calendar.name,
                "previous_owner_id": previous_owner_id,
                "new_owner_id": new_owner.pk,
                "new_owner_email": new_owner.email,
                "assigned_to_self": new_owner.pk == actor_id,
            },
        )
        return calendar

    def bulk_transfer_ownership(
        self,
        actor: Actor,
        calendar_ids: Sequence[uuid.UUID | str],
        new_owner_id: uuid.UUID | str,
    ) -> list[Calendar]:
        """
        Give several calendars to one user. Unknown ids are skipped; at least one must exist.
        Emits a single audit event listing every previous owner.
        """
        actor_id = self._require_staff(actor)
        self.rate_limiter_service.enforce(actor_id, RateLimitedAction.BULK_OWNERSHIP_TRANSFER)
        new_owner = self._get_new_owner(new_owner_id)
        try:
            calendars = list(Calendar.objects.filter(id__in=calendar_ids).order_by("name"))
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        if not calendars:
            raise CalendarNotFoundError("No calendars found with the provided ids")

        previous_owners = [
            {"calendar_id": calendar.id, "previous_owner_id": calendar.owner_id}
            for calendar in calendars
        ]
        self._assign_owner(calendars, new_owner)

        logger.warning(
            "%s calendars transferred to user %s by staff user %s",
            len(calendars),
            new_owner.pk,
            actor_id,
        )
        self.audit_service.admin_event(
            AuditAction.CALENDARS_BULK_TRANSFERRED,
            AuditResourceType.CALENDAR,
            user_id=actor_id,
            metadata={
                "count": len(calendars),
                "calendar_ids": [calendar.id for calendar in calendars],
                "new_owner_id": new_owner.pk,
                "new_owner_email": new_owner.email,
                "previous_owners": previous_owners,
            },
        )
        return calendars
