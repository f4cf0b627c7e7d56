from collections.abc import Iterable

from django.db.models import TextChoices


class PermissionLevel(TextChoices):
    """
    Effective permission of an actor on a calendar. Members are declared in ascending order,
    so the declaration index is the rank used by every comparison.
    """

    NONE = "none", "No access"
    READ = "read", "Read"
    WRITE = "write", "Write"
    ADMIN = "admin", "Admin"
    OWNER = "owner", "Owner"

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def at_least(self, other: "PermissionLevel | str") -> bool:
        return self.rank >= PermissionLevel(other).rank

    @classmethod
    def highest(cls, levels: Iterable["PermissionLevel | str | None"]) -> "PermissionLevel":
        return max(
            (cls(level) for level in levels if level is not None),
            key=lambda level: level.rank,
            default=cls.NONE,
        )


class GuestPermission(TextChoices):
    NONE = "none", "No access"
    READ = "read", "Read"
    WRITE = "write", "Write"


class SharePermission(TextChoices):
    READ = "read", "Read"
    WRITE = "write", "Write"
    ADMIN = "admin", "Admin"
    OWNER = "owner", "Owner"


class AccessTokenPermission(TextChoices):
    READ = "read", "Read"
    WRITE = "write", "Write"


class SubscriptionSource(TextChoices):
    GUEST = "guest", "Guest policy"
    SHARED = "shared", "Shared with user"
    TOKEN = "token", "Access token"


class SubscriptionStatus(TextChoices):
    SUBSCRIBED = "subscribed", "Subscribed"
    DISMISSED = "dismissed", "Dismissed"


class RateLimitedAction(TextChoices):
    TOKEN_CREATION = "token-creation", "Token creation"
    SHARE_MUTATION = "share-mutation", "Share mutation"
    CALENDAR_CREATION = "calendar-creation", "Calendar creation"
    OWNERSHIP_TRANSFER = "ownership-transfer", "Ownership transfer"
    BULK_OWNERSHIP_TRANSFER = "bulk-ownership-transfer", "Bulk ownership transfer"


class AuditResourceType(TextChoices):
    CALENDAR = "calendar", "Calendar"
    CALENDAR_SHARE = "calendar_share", "Calendar share"
    CALENDAR_ACCESS_TOKEN = "calendar_access_token", "Calendar access token"
    RATE_LIMIT = "rate_limit", "Rate limit"


class AuditAction(TextChoices):
    CALENDAR_CREATED = "calendar.created", "Calendar created"
    CALENDAR_DELETED = "calendar.deleted", "Calendar deleted"
    CALENDAR_OWNERSHIP_TRANSFERRED = "admin.calendar.transfer", "Calendar ownership transferred"
    CALENDARS_BULK_TRANSFERRED = "admin.calendar.bulk_transfer", "Calendars transferred in bulk"
    CALENDAR_GUEST_PERMISSION_CHANGED = "calendar.guest_permission", "Guest permission changed"
    CALENDAR_SHARED = "calendar.shared", "Calendar shared"
    CALENDAR_PERMISSION_CHANGED = "calendar.permission.changed", "Share permission changed"
    CALENDAR_SHARE_REMOVED = "calendar.share.removed", "Share removed"
    TOKEN_CREATED = "calendar_token_created", "Access token created"
    TOKEN_UPDATED = "calendar_token_updated", "Access token updated"
    TOKEN_ACTIVATED = "calendar_token_activated", "Access token activated"
    TOKEN_DEACTIVATED = "calendar_token_deactivated", "Access token deactivated"
    TOKEN_REVOKED = "calendar_token_revoked", "Access token revoked"
    RATE_LIMIT_HIT = "rate_limit_hit", "Rate limit hit"
