import datetime
import uuid
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any

from calendar_access.constants import (
    AccessTokenPermission,
    PermissionLevel,
    SubscriptionSource,
)


@dataclass(frozen=True)
class IssuedAccessToken:
    """
    Result of issuing an access token. This is the only object that ever carries the full secret.
    """

    id: uuid.UUID  # noqa: A003
    calendar_id: uuid.UUID
    token: str
    token_preview: str
    name: str
    permission: AccessTokenPermission
    expires_at: datetime.datetime | None
    created: datetime.datetime


@dataclass(frozen=True)
class ValidatedAccessToken:
    token_id: uuid.UUID
    calendar_id: uuid.UUID
    permission: AccessTokenPermission


@dataclass(frozen=True)
class AccessTokenData:
    """Stored view of a token. Holds the preview, never the secret."""

    id: uuid.UUID  # noqa: A003
    calendar_id: uuid.UUID
    token_preview: str
    name: str
    permission: AccessTokenPermission
    expires_at: datetime.datetime | None
    created_by_id: uuid.UUID | None
    created: datetime.datetime
    last_used_at: datetime.datetime | None
    usage_count: int
    is_active: bool


@dataclass(frozen=True)
class RateLimitAllowed:
    key: str


@dataclass(frozen=True)
class RateLimitDenied:
    key: str
    retry_after: int


RateLimitDecision = RateLimitAllowed | RateLimitDenied


@dataclass
class AuditEventData:
    action: str
    resource_type: str
    resource_id: str | None = None
    user_id: str | None = None
    severity: str = "info"
    is_user_visible: bool = False
    metadata: dict[str, Any] = dataclass_field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime.datetime = dataclass_field(
        default_factory=lambda: datetime.datetime.now(tz=datetime.UTC)
    )


@dataclass(frozen=True)
class AccessibleCalendarData:
    calendar_id: uuid.UUID
    name: str
    color: str
    level: PermissionLevel
    source: SubscriptionSource | None
    is_owner: bool
