import datetime
import logging
import uuid
from collections.abc import Iterable
from typing import Annotated

from dependency_injector.wiring import Provide, inject

from calendar_access.constants import AccessTokenPermission
from calendar_access.services.dataclasses import ValidatedAccessToken
from calendar_access.services.protocols.access_token_store import AccessTokenStore
from common.utils.authentication_utils import hash_long_lived_token


logger = logging.getLogger(__name__)


class AccessTokenValidator:
    """
    Checks presented token secrets. Unknown, inactive and expired tokens are all answered with
    `None`; storage failures raise `StorageUnavailableError`.
    """

    @inject
    def __init__(
        self,
        access_token_store: Annotated[AccessTokenStore, Provide["access_token_store"]],
    ):
        self.access_token_store = access_token_store

    def validate(
        self,
        secret: str | None,
        now: datetime.datetime | None = None,
        calendar_id: uuid.UUID | None = None,
    ) -> ValidatedAccessToken | None:
        """
        Validate a presented secret and, on success, schedule the usage telemetry update.
        :param secret: The full token secret as presented by the caller.
        :param now: Reference time, read once; defaults to the current time.
        :param calendar_id: When given, tokens of other calendars are ignored and their usage is
            not recorded.
        :return: The calendar and permission the token grants, or None if it grants nothing.
        """
        if not secret:
            return None

        now = now or datetime.datetime.now(tz=datetime.UTC)
        token = self.access_token_store.get_usable_by_hash(hash_long_lived_token(secret), now)
        if token is None or (calendar_id is not None and token.calendar_id != calendar_id):
            return None

        self.schedule_usage_recording(token.id, now)
        return ValidatedAccessToken(
            token_id=token.id,
            calendar_id=token.calendar_id,
            permission=AccessTokenPermission(token.permission),
        )

    def validate_many(
        self,
        secrets: Iterable[str],
        now: datetime.datetime | None = None,
        calendar_id: uuid.UUID | None = None,
    ) -> list[ValidatedAccessToken]:
        now = now or datetime.datetime.now(tz=datetime.UTC)
        validated_tokens = (
            self.validate(secret, now, calendar_id) for secret in dict.fromkeys(secrets)
        )
        return [validated_token for validated_token in validated_tokens if validated_token]

    def validate_stored(
        self, token_id: uuid.UUID | None, now: datetime.datetime | None = None
    ) -> ValidatedAccessToken | None:
        """
        Check a token remembered by id, e.g. the one linked to a subscription. Same rules as
        `validate`, but no usage is recorded since nothing was presented.
        """
        if token_id is None:
            return None

        token = self.access_token_store.get_usable(
            token_id, now or datetime.datetime.now(tz=datetime.UTC)
        )
        if token is None:
            return None
        return ValidatedAccessToken(
            token_id=token.id,
            calendar_id=token.calendar_id,
            permission=AccessTokenPermission(token.permission),
        )

    def schedule_usage_recording(self, token_id, used_at: datetime.datetime) -> None:
        from calendar_access.tasks import record_access_token_usage

        try:
            record_access_token_usage.delay(str(token_id), used_at.isoformat())  # type: ignore
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record usage of calendar access token %s", token_id)
