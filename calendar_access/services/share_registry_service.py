import logging
import uuid
from typing import Annotated

from django.db import DatabaseError, IntegrityError, transaction

from dependency_injector.wiring import Provide, inject

from calendar_access.constants import (
    AuditAction,
    AuditResourceType,
    PermissionLevel,
    RateLimitedAction,
    SharePermission,
    SubscriptionSource,
)
from calendar_access.exceptions import (
    CalendarShareNotFoundError,
    DuplicateShareError,
    InsufficientPermissionError,
    InvalidShareLevelError,
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
from calendar_access.services.subscription_service import SubscriptionService
from users.models import User


logger = logging.getLogger(__name__)


def required_level_for_share(level: SharePermission | str) -> PermissionLevel:
    """Granting, changing or removing an admin share takes an owner; anything else an admin."""
    if PermissionLevel(level).at_least(PermissionLevel.ADMIN):
        return PermissionLevel.OWNER
    return PermissionLevel.ADMIN


class ShareRegistryService:
    """
    Manages per-user shares of a calendar and enforces who may grant what.
    """

    @inject
    def __init__(
        self,
        permission_resolver_service: Annotated[
            PermissionResolverService, Provide["permission_resolver_service"]
        ],
        rate_limiter_service: Annotated[RateLimiterService, Provide["rate_limiter_service"]],
        subscription_service: Annotated[SubscriptionService, Provide["subscription_service"]],
        audit_service: Annotated[AuditService, Provide["audit_service"]],
    ):
        self.permission_resolver_service = permission_resolver_service
        self.rate_limiter_service = rate_limiter_service
        self.subscription_service = subscription_service
        self.audit_service = audit_service

    def list_shares(self, actor: Actor, calendar_id: uuid.UUID | str):
        calendar, _ = self.permission_resolver_service.require_actor_level(
            actor, calendar_id, PermissionLevel.ADMIN
        )
        return CalendarShare.objects.filter(calendar=calendar).select_related("user").order_by(
            "created"
        )

    def _get_share(self, calendar: Calendar, share_id: uuid.UUID | str) -> CalendarShare:
        try:
            share = CalendarShare.objects.filter(id=share_id, calendar=calendar).first()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        if share is None:
            raise CalendarShareNotFoundError()
        return share

    def _check_grant(
        self,
        actor_level: PermissionLevel,
        level: SharePermission | str,
        previous_level: str | None,
    ) -> None:
        if level == SharePermission.OWNER:
            raise InvalidShareLevelError()
        required_levels = [required_level_for_share(level)]
        if previous_level is not None:
            required_levels.append(required_level_for_share(previous_level))
        if not all(actor_level.at_least(required) for required in required_levels):
            raise InsufficientPermissionError()

    def create_or_update_share(
        self,
        actor: Actor,
        calendar_id: uuid.UUID | str,
        target_user_id: uuid.UUID | str,
        level: SharePermission | str,
    ) -> CalendarShare:
        """
        Share a calendar with a user, or change the level of the existing share.
        :param actor: User performing the change.
        :param calendar_id: ID of the calendar to share.
        :param target_user_id: ID of the user receiving the share.
        :param level: One of `SharePermission`, except `owner`.
        :return: The created or updated CalendarShare.
        """
        calendar, actor_level = self.permission_resolver_service.require_actor_level(
            actor, calendar_id, PermissionLevel.ADMIN
        )
        target_user = User.objects.filter(id=target_user_id).first()
        if target_user is None:
            raise UserNotFoundError()
        previous_level = (
            CalendarShare.objects.filter(calendar=calendar, user=target_user)
            .values_list("permission", flat=True)
            .first()
        )
        self._check_grant(actor_level, level, previous_level)
        self.rate_limiter_service.enforce(
            get_actor_id(actor), RateLimitedAction.SHARE_MUTATION, calendar.id
        )

        try:
            with transaction.atomic():
                share, created = CalendarShare.objects.update_or_create(
                    calendar=calendar,
                    user=target_user,
                    defaults={"permission": level, "granted_by_id": get_actor_id(actor)},
                )
        except IntegrityError as e:
            raise DuplicateShareError() from e

        self.subscription_service.record_subscription(
            target_user, calendar, SubscriptionSource.SHARED
        )

        if created:
            logger.info("Calendar %s shared with user %s as %s", calendar.id, target_user_id, level)
            self.audit_service.user_event(
                AuditAction.CALENDAR_SHARED,
                AuditResourceType.CALENDAR,
                resource_id=calendar.id,
                user_id=get_actor_id(actor),
                metadata={
                    "share_id": share.id,
                    "target_user_id": target_user_id,
                    "permission": level,
                },
            )
        elif previous_level != level:
            logger.info(
                "Share of calendar %s for user %s changed from %s to %s",
                calendar.id,
                target_user_id,
                previous_level,
                level,
            )
            self.audit_service.user_event(
                AuditAction.CALENDAR_PERMISSION_CHANGED,
                AuditResourceType.CALENDAR,
                resource_id=calendar.id,
                user_id=get_actor_id(actor),
                metadata={
                    "share_id": share.id,
                    "target_user_id": target_user_id,
                    "old_permission": previous_level,
                    "new_permission": level,
                },
            )
        return share

    def update_share(
        self,
        actor: Actor,
        calendar_id: uuid.UUID | str,
        share_id: uuid.UUID | str,
        level: SharePermission | str,
    ) -> CalendarShare:
        calendar = self.permission_resolver_service.get_calendar(calendar_id)
        share = self._get_share(calendar, share_id)
        return self.create_or_update_share(actor, calendar.id, share.user_id, level)

    def remove_share(
        self,
        actor: Actor,
        calendar_id: uuid.UUID | str,
        share_id: uuid.UUID | str,
    ) -> None:
        """
        Remove a share. Any user may remove their own share unless it is an admin share, which
        only the calendar owner may remove.
        """
        calendar = self.permission_resolver_service.get_calendar(calendar_id)
        share = self._get_share(calendar, share_id)
        actor_id = get_actor_id(actor)
        actor_level = self.permission_resolver_service.resolve_actor_level(actor, calendar)
        is_self_removal = actor_id is not None and share.user_id == actor_id

        if PermissionLevel(share.permission).at_least(PermissionLevel.ADMIN):
            if actor_level != PermissionLevel.OWNER:
                raise InsufficientPermissionError()
        elif not is_self_removal and not actor_level.at_least(PermissionLevel.ADMIN):
            raise InsufficientPermissionError()

        if actor_level == PermissionLevel.OWNER:
            removed_by = "owner"
        elif is_self_removal:
            removed_by = "self"
        else:
            removed_by = "admin"

        share_data = {
            "share_id": share.id,
            "target_user_id": share.user_id,
            "permission": share.permission,
            "removed_by": removed_by,
        }
        share.delete()

        logger.info(
            "Share %s removed from calendar %s by %s", share_data["share_id"], calendar.id, removed_by
        )
        self.audit_service.user_event(
            AuditAction.CALENDAR_SHARE_REMOVED,
            AuditResourceType.CALENDAR,
            resource_id=calendar.id,
            user_id=actor_id,
            metadata=share_data,
        )
