import datetime
import uuid
from collections.abc import Iterable

from django.db import DatabaseError
from django.db.models import F

from calendar_access.constants import AccessTokenPermission
from calendar_access.exceptions import StorageUnavailableError
from calendar_access.models import CalendarAccessToken
from calendar_access.services.dataclasses import AccessTokenData


UPDATABLE_FIELDS = frozenset({"name", "permission", "expires_at", "is_active"})


def to_access_token_data(token: CalendarAccessToken) -> AccessTokenData:
    return AccessTokenData(
        id=token.id,
        calendar_id=token.calendar_id,
        token_preview=token.token_preview,
        name=token.name,
        permission=AccessTokenPermission(token.permission),
        expires_at=token.expires_at,
        created_by_id=token.created_by_id,
        created=token.created,
        last_used_at=token.last_used_at,
        usage_count=token.usage_count,
        is_active=token.is_active,
    )


class DjangoAccessTokenStore:
    """
    ORM-backed access token persistence. Database errors are re-raised as
    `StorageUnavailableError` so callers can tell "could not check" from "may not".
    """

    def create(
        self,
        calendar_id: uuid.UUID,
        token_hash: str,
        token_preview: str,
        permission: AccessTokenPermission,
        name: str = "",
        expires_at: datetime.datetime | None = None,
        created_by_id: uuid.UUID | None = None,
    ) -> AccessTokenData:
        try:
            token = CalendarAccessToken.objects.create(
                calendar_id=calendar_id,
                token_hash=token_hash,
                token_preview=token_preview,
                permission=permission,
                name=name or "",
                expires_at=expires_at,
                created_by_id=created_by_id,
            )
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return to_access_token_data(token)

    def get(self, token_id: uuid.UUID) -> AccessTokenData | None:
        try:
            token = CalendarAccessToken.objects.filter(id=token_id).first()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return to_access_token_data(token) if token else None

    def get_usable_by_hash(self, token_hash: str, now: datetime.datetime) -> AccessTokenData | None:
        try:
            token = CalendarAccessToken.objects.filter_usable(now).filter(token_hash=token_hash).first()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return to_access_token_data(token) if token else None

    def get_usable(self, token_id: uuid.UUID, now: datetime.datetime) -> AccessTokenData | None:
        try:
            token = CalendarAccessToken.objects.filter_usable(now).filter(id=token_id).first()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return to_access_token_data(token) if token else None

    def list_for_calendar(self, calendar_id: uuid.UUID) -> Iterable[AccessTokenData]:
        try:
            tokens = list(
                CalendarAccessToken.objects.filter_by_calendar(calendar_id).order_by("-created")
            )
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return [to_access_token_data(token) for token in tokens]

    def update(self, token_id: uuid.UUID, **changes) -> AccessTokenData | None:
        unknown_fields = set(changes) - UPDATABLE_FIELDS
        if unknown_fields:
            raise ValueError(f"Cannot update access token fields: {sorted(unknown_fields)}")

        try:
            token = CalendarAccessToken.objects.filter(id=token_id).first()
            if not token:
                return None
            for field_name, value in changes.items():
                setattr(token, field_name, value)
            token.save(update_fields=[*changes.keys(), "modified"])
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return to_access_token_data(token)

    def delete(self, token_id: uuid.UUID) -> bool:
        try:
            deleted, _ = CalendarAccessToken.objects.filter(id=token_id).delete()
        except DatabaseError as e:
            raise StorageUnavailableError() from e
        return bool(deleted)

    def record_usage(self, token_id: uuid.UUID, used_at: datetime.datetime) -> None:
        try:
            CalendarAccessToken.objects.filter(id=token_id).update(
                usage_count=F("usage_count") + 1,
                last_used_at=used_at,
            )
        except DatabaseError as e:
            raise StorageUnavailableError() from e
