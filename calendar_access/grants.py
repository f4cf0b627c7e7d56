"""
Independent grant sources. Each function answers for one mechanism only and returns `None` when
that mechanism grants nothing; the resolver takes the highest of the answers.
"""

import uuid

from calendar_access.constants import GuestPermission, PermissionLevel
from calendar_access.models import Calendar
from calendar_access.services.dataclasses import ValidatedAccessToken


SHARE_LEVEL_CEILING = PermissionLevel.ADMIN
TOKEN_LEVEL_CEILING = PermissionLevel.WRITE


def cap_level(level: PermissionLevel | str, ceiling: PermissionLevel) -> PermissionLevel:
    level = PermissionLevel(level)
    return level if ceiling.at_least(level) else ceiling


def ownership_grant(actor_id: uuid.UUID | None, calendar: Calendar) -> PermissionLevel | None:
    if actor_id is None or calendar.owner_id is None:
        return None
    return PermissionLevel.OWNER if calendar.owner_id == actor_id else None


def share_grant(share_permission: str | None) -> PermissionLevel | None:
    """
    Ownership is structural, so a share never yields `owner`, even for rows stored at that level.
    """
    if share_permission is None:
        return None
    return cap_level(share_permission, SHARE_LEVEL_CEILING)


def guest_grant(
    calendar: Calendar, is_anonymous: bool, allow_anonymous_guest_access: bool = True
) -> PermissionLevel | None:
    if calendar.guest_permission == GuestPermission.NONE:
        return None
    if is_anonymous and not allow_anonymous_guest_access:
        return None
    return PermissionLevel(calendar.guest_permission)


def token_grant(
    validated_token: ValidatedAccessToken | None, calendar: Calendar
) -> PermissionLevel | None:
    if validated_token is None or validated_token.calendar_id != calendar.id:
        return None
    return cap_level(validated_token.permission, TOKEN_LEVEL_CEILING)
