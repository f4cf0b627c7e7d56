import datetime
import logging
import uuid
from typing import Annotated, Any

from dependency_injector.wiring import Provide, inject

from calendar_access.constants import (
    AccessTokenPermission,
    AuditAction,
    AuditResourceType,
    PermissionLevel,
    RateLimitedAction,
    SubscriptionSource,
)
from calendar_access.exceptions import (
    CalendarAccessTokenNotFoundError,
    InvalidAccessTokenError,
    InvalidExpirationError,
    InvalidTokenPermissionError,
)
from calendar_access.services.access_token_validator import AccessTokenValidator
from calendar_access.services.audit_service import AuditService
from calendar_access.services.dataclasses import (
    AccessTokenData,
    IssuedAccessToken,
    ValidatedAccessToken,
)
from calendar_access.services.permission_resolver_service import (
    Actor,
    PermissionResolverService,
    get_actor_id,
)
from calendar_access.services.protocols.access_token_store import AccessTokenStore
from calendar_access.services.rate_limiter_service import RateLimiterService
from calendar_access.services.subscription_service import SubscriptionService
from common.utils.authentication_utils import (
    build_token_preview,
    generate_long_lived_token,
    hash_long_lived_token,
)


logger = logging.getLogger(__name__)


def validate_expiration(expires_at: datetime.datetime | None, now: datetime.datetime) -> None:
    if expires_at is None:
        return
    if expires_at.tzinfo is None or expires_at <= now:
        raise InvalidExpirationError()


def parse_token_permission(permission: AccessTokenPermission | str) -> AccessTokenPermission:
    try:
        return AccessTokenPermission(permission)
    except ValueError as e:
        raise InvalidTokenPermissionError() from e


class AccessTokenService:
    """
    Lifecycle of bearer access tokens: issuing, validating, updating, deactivating and revoking.
    Every management operation requires the acting user's own level to be admin or owner; a
    presented token never counts towards it.
    """

    @inject
    def __init__(
        self,
        access_token_store: Annotated[AccessTokenStore, Provide["access_token_store"]],
        access_token_validator: Annotated[
            AccessTokenValidator, Provide["access_token_validator"]
        ],
        permission_resolver_service: Annotated[
            PermissionResolverService, Provide["permission_resolver_service"]
        ],
        rate_limiter_service: Annotated[RateLimiterService, Provide["rate_limiter_service"]],
        subscription_service: Annotated[SubscriptionService, Provide["subscription_service"]],
        audit_service: Annotated[AuditService, Provide["audit_service"]],
        token_preview_length: Annotated[
            int, Provide["config.CALENDAR_ACCESS_TOKEN_PREVIEW_LENGTH"]
        ] = 6,
    ):
        self.access_token_store = access_token_store
        self.access_token_validator = access_token_validator
        self.permission_resolver_service = permission_resolver_service
        self.rate_limiter_service = rate_limiter_service
        self.subscription_service = subscription_service
        self.audit_service = audit_service
        self.token_preview_length = token_preview_length

    def issue(
        self,
        actor: Actor,
        calendar_id: uuid.UUID | str,
        permission: AccessTokenPermission | str,
        name: str = "",
        expires_at: datetime.datetime | None = None,
    ) -> IssuedAccessToken:
        """
        Issue a new access token for a calendar.
        :param actor: User issuing the token; must be admin or owner of the calendar.
        :param calendar_id: ID of the calendar the token grants access to.
        :param permission: `read` or `write`.
        :param name: Optional label.
        :param expires_at: Optional expiration, strictly in the future.
        :return: IssuedAccessToken, the only place the full secret is ever returned.
        """
        calendar, _ = self.permission_resolver_service.require_actor_level(
            actor, calendar_id, PermissionLevel.ADMIN
        )
        permission = parse_token_permission(permission)
        validate_expiration(expires_at, datetime.datetime.now(tz=datetime.UTC))

        actor_id = get_actor_id(actor)
        self.rate_limiter_service.enforce(actor_id, RateLimitedAction.TOKEN_CREATION, calendar.id)

        secret = generate_long_lived_token()
        token = self.access_token_store.create(
            calendar_id=calendar.id,
            token_hash=hash_long_lived_token(secret),
            token_preview=build_token_preview(secret, self.token_preview_length),
            permission=permission,
            name=name,
            expires_at=expires_at,
            created_by_id=actor_id,
        )

        logger.info("Access token %s issued for calendar %s", token.id, calendar.id)
        self.audit_service.user_event(
            AuditAction.TOKEN_CREATED,
            AuditResourceType.CALENDAR_ACCESS_TOKEN,
            resource_id=token.id,
            user_id=actor_id,
            metadata={
                "calendar_id": calendar.id,
                "permission": permission,
                "name": token.name,
                "expires_at": expires_at,
                "token_preview": token.token_preview,
            },
        )
        return IssuedAccessToken(
            id=token.id,
            calendar_id=token.calendar_id,
            token=secret,
            token_preview=token.token_preview,
            name=token.name,
            permission=token.permission,
            expires_at=token.expires_at,
            created=token.created,
        )

    def validate(
        self, secret: str | None, now: datetime.datetime | None = None
    ) -> ValidatedAccessToken | None:
        return self.access_token_validator.validate(secret, now=now)

    def redeem(self, actor: Actor, secret: str | None) -> ValidatedAccessToken:
        """
        Validate a token opened through a link and, for signed-in users, remember the calendar
        in their list together with the token, so the link keeps working without presenting it.
        :raises InvalidAccessTokenError: if the token grants nothing.
        """
        validated_token = self.access_token_validator.validate(secret)
        if validated_token is None:
            raise InvalidAccessTokenError()

        if get_actor_id(actor) is not None:
            calendar = self.permission_resolver_service.get_calendar(validated_token.calendar_id)
            self.subscription_service.record_subscription(
                actor, calendar, SubscriptionSource.TOKEN, access_token_id=validated_token.token_id
            )
        return validated_token

    def list_tokens(self, actor: Actor, calendar_id: uuid.UUID | str) -> list[AccessTokenData]:
        calendar, _ = self.permission_resolver_service.require_actor_level(
            actor, calendar_id, PermissionLevel.ADMIN
        )
        return list(self.access_token_store.list_for_calendar(calendar.id))

    def get_token(
        self,
        actor: Actor,
        token_id: uuid.UUID | str,
        calendar_id: uuid.UUID | str | None = None,
    ) -> AccessTokenData:
        """
        Fetch a token the actor may manage.
        :raises CalendarAccessTokenNotFoundError: if it does not exist or belongs to another
            calendar than `calendar_id`.
        """
        try:
            token = self.access_token_store.get(uuid.UUID(str(token_id)))
        except ValueError as e:
            raise CalendarAccessTokenNotFoundError() from e
        if token is None or (
            calendar_id is not None and str(token.calendar_id) != str(calendar_id)
        ):
            raise CalendarAccessTokenNotFoundError()
        self.permission_resolver_service.require_actor_level(
            actor, token.calendar_id, PermissionLevel.ADMIN
        )
        return token

    def revoke(
        self,
        actor: Actor,
        token_id: uuid.UUID | str,
        calendar_id: uuid.UUID | str | None = None,
    ) -> None:
        """Permanently delete a token. Use `set_active` for a reversible kill switch."""
        token = self.get_token(actor, token_id, calendar_id)
        if not self.access_token_store.delete(token.id):
            raise CalendarAccessTokenNotFoundError()

        logger.info("Access token %s of calendar %s revoked", token.id, token.calendar_id)
        self.audit_service.user_event(
            AuditAction.TOKEN_REVOKED,
            AuditResourceType.CALENDAR_ACCESS_TOKEN,
            resource_id=token.id,
            user_id=get_actor_id(actor),
            metadata={
                "calendar_id": token.calendar_id,
                "name": token.name,
                "permission": token.permission,
                "token_preview": token.token_preview,
                "usage_count": token.usage_count,
            },
        )

    def set_active(
        self,
        actor: Actor,
        token_id: uuid.UUID | str,
        is_active: bool,
        calendar_id: uuid.UUID | str | None = None,
    ) -> AccessTokenData:
        token = self.get_token(actor, token_id, calendar_id)
        return self._set_active(actor, token, is_active)

    def _set_active(self, actor: Actor, token: AccessTokenData, is_active: bool) -> AccessTokenData:
        if token.is_active == is_active:
            return token

        updated_token = self.access_token_store.update(token.id, is_active=is_active)
        if updated_token is None:
            raise CalendarAccessTokenNotFoundError()

        logger.info(
            "Access token %s of calendar %s %s",
            token.id,
            token.calendar_id,
            "activated" if is_active else "deactivated",
        )
        self.audit_service.user_event(
            AuditAction.TOKEN_ACTIVATED if is_active else AuditAction.TOKEN_DEACTIVATED,
            AuditResourceType.CALENDAR_ACCESS_TOKEN,
            resource_id=token.id,
            user_id=get_actor_id(actor),
            metadata={"calendar_id": token.calendar_id, "token_preview": token.token_preview},
        )
        return updated_token

    def update_token(
        self,
        actor: Actor,
        token_id: uuid.UUID | str,
        calendar_id: uuid.UUID | str | None = None,
        **changes: Any,
    ) -> AccessTokenData:
        """
        Update a token's `name`, `permission`, `expires_at` (None removes the expiration) or
        `is_active`. Only the keys present in `changes` are touched.
        """
        token = self.get_token(actor, token_id, calendar_id)
        is_active = changes.pop("is_active", None)

        if "permission" in changes:
            changes["permission"] = parse_token_permission(changes["permission"])
        if "expires_at" in changes:
            validate_expiration(changes["expires_at"], datetime.datetime.now(tz=datetime.UTC))
        if "name" in changes:
            changes["name"] = changes["name"] or ""

        changed_fields = sorted(
            field_name
            for field_name, value in changes.items()
            if getattr(token, field_name) != value
        )
        if changed_fields:
            updated_token = self.access_token_store.update(
                token.id, **{field_name: changes[field_name] for field_name in changed_fields}
            )
            if updated_token is None:
                raise CalendarAccessTokenNotFoundError()
            token = updated_token

            logger.info("Access token %s updated: %s", token.id, ", ".join(changed_fields))
            self.audit_service.user_event(
                AuditAction.TOKEN_UPDATED,
                AuditResourceType.CALENDAR_ACCESS_TOKEN,
                resource_id=token.id,
                user_id=get_actor_id(actor),
                metadata={
                    "calendar_id": token.calendar_id,
                    "changed_fields": changed_fields,
                    **{field_name: changes[field_name] for field_name in changed_fields},
                },
            )

        if is_active is not None:
            token = self._set_active(actor, token, bool(is_active))
        return token
