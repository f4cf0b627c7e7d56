from django.conf import settings
from django.db import models

from calendar_access.constants import (
    AccessTokenPermission,
    GuestPermission,
    SharePermission,
    SubscriptionSource,
    SubscriptionStatus,
)
from calendar_access.managers import CalendarAccessTokenManager, CalendarSubscriptionManager
from common.models import BaseModel


class Calendar(BaseModel):
    """
    A shareable scheduling calendar. Ownership is structural: it lives in `owner`, never in a share.
    Deleting the owner's account leaves the calendar orphaned.
    """

    name = models.CharField(max_length=255)
    color = models.CharField(max_length=7, default="#3b82f6")
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_calendars",
    )
    guest_permission = models.CharField(
        max_length=10,
        choices=GuestPermission.choices,
        default=GuestPermission.NONE,
        help_text="Permission granted to every caller without a more specific grant.",
    )

    @property
    def is_orphaned(self) -> bool:
        return self.owner_id is None

    def __str__(self):
        return self.name


class CalendarShare(BaseModel):
    """
    A grant of permission to one user on one calendar.
    """

    calendar = models.ForeignKey(Calendar, on_delete=models.CASCADE, related_name="shares")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_shares",
    )
    permission = models.CharField(max_length=10, choices=SharePermission.choices)
    granted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="granted_calendar_shares",
    )

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("calendar", "user"), name="unique_calendar_share_per_user"
            ),
        )

    def __str__(self):
        return f"{self.user_id} ({self.permission}) on {self.calendar_id}"


class CalendarAccessToken(BaseModel):
    """
    Bearer capability granting anonymous access to one calendar. Only the sha256 hash of the
    secret is stored; the secret itself is returned once, by the call that issues the token.
    """

    calendar = models.ForeignKey(Calendar, on_delete=models.CASCADE, related_name="access_tokens")
    token_hash = models.CharField(max_length=64, unique=True)
    token_preview = models.CharField(max_length=16)
    name = models.CharField(max_length=255, blank=True)
    permission = models.CharField(max_length=10, choices=AccessTokenPermission.choices)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_calendar_access_tokens",
    )
    last_used_at = models.DateTimeField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    objects: CalendarAccessTokenManager = CalendarAccessTokenManager()

    class Meta:
        indexes = (
            models.Index(
                fields=("calendar", "is_active"), name="calendar_access_token_active_idx"
            ),
        )

    def __str__(self):
        return f"{self.name or self.token_preview} ({self.permission})"


class CalendarSubscription(BaseModel):
    """
    Records how a user came to see a calendar and whether they dismissed it. The subscription
    itself grants nothing; a linked access token still counts only while it is usable.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_subscriptions",
    )
    calendar = models.ForeignKey(Calendar, on_delete=models.CASCADE, related_name="subscriptions")
    source = models.CharField(max_length=10, choices=SubscriptionSource.choices)
    status = models.CharField(
        max_length=12,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.SUBSCRIBED,
    )
    access_token = models.ForeignKey(
        CalendarAccessToken,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
        help_text="Token the user redeemed to reach the calendar, kept so the link keeps working.",
    )

    objects: CalendarSubscriptionManager = CalendarSubscriptionManager()

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("user", "calendar"), name="unique_calendar_subscription_per_user"
            ),
        )

    def __str__(self):
        return f"{self.user_id} {self.status} {self.calendar_id} via {self.source}"
