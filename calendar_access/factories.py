from model_bakery import baker

from common.utils.authentication_utils import (
    build_token_preview,
    generate_long_lived_token,
    hash_long_lived_token,
)

from .constants import AccessTokenPermission, GuestPermission, SharePermission
from .models import Calendar, CalendarAccessToken, CalendarShare


class CalendarFactory:
    @staticmethod
    def create_calendar(owner=None, guest_permission=GuestPermission.NONE, **kwargs) -> Calendar:
        return baker.make(
            Calendar,
            owner=owner,
            name=kwargs.pop("name", "Team calendar"),
            guest_permission=guest_permission,
            **kwargs,
        )

    @staticmethod
    def share(calendar: Calendar, user, permission=SharePermission.READ, **kwargs) -> CalendarShare:
        """Create the share, or change the level of the one the user already has."""
        share, _ = CalendarShare.objects.update_or_create(
            calendar=calendar,
            user=user,
            defaults={"permission": permission, **kwargs},
        )
        return share


class CalendarAccessTokenFactory:
    @staticmethod
    def create_token(
        calendar: Calendar,
        permission=AccessTokenPermission.READ,
        **kwargs,
    ) -> tuple[CalendarAccessToken, str]:
        """
        Create a stored token directly, bypassing the issuing service.

        Returns:
            The CalendarAccessToken row and its plain secret
        """
        secret = kwargs.pop("secret", None) or generate_long_lived_token()
        token = baker.make(
            CalendarAccessToken,
            calendar=calendar,
            permission=permission,
            token_hash=hash_long_lived_token(secret),
            token_preview=build_token_preview(secret),
            **kwargs,
        )
        return token, secret
