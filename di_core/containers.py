from dependency_injector import containers, providers
from redis import Redis

from calendar_access.services.access_token_service import AccessTokenService
from calendar_access.services.access_token_stores.django_access_token_store import (
    DjangoAccessTokenStore,
)
from calendar_access.services.access_token_validator import AccessTokenValidator
from calendar_access.services.audit_service import AuditService
from calendar_access.services.audit_sinks.celery_audit_event_sink import CeleryAuditEventSink
from calendar_access.services.calendar_service import CalendarService
from calendar_access.services.permission_resolver_service import PermissionResolverService
from calendar_access.services.rate_limit_bucket_stores.in_memory_bucket_store import (
    InMemoryBucketStore,
)
from calendar_access.services.rate_limit_bucket_stores.redis_bucket_store import (
    RedisBucketStore,
)
from calendar_access.services.rate_limiter_service import RateLimiterService
from calendar_access.services.share_registry_service import ShareRegistryService
from calendar_access.services.subscription_service import SubscriptionService


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    audit_event_sink = providers.Singleton(
        CeleryAuditEventSink,
    )

    audit_service = providers.Factory(
        AuditService,
        audit_event_sink=audit_event_sink,
    )

    rate_limit_redis_client = providers.Singleton(
        Redis.from_url,
        config.CALENDAR_ACCESS_RATE_LIMIT_REDIS_URL,
    )

    rate_limit_bucket_store = providers.Selector(
        config.CALENDAR_ACCESS_RATE_LIMIT_BACKEND,
        memory=providers.Singleton(InMemoryBucketStore),
        redis=providers.Singleton(
            RedisBucketStore,
            redis_client=rate_limit_redis_client,
            key_prefix=config.CALENDAR_ACCESS_RATE_LIMIT_KEY_PREFIX,
        ),
    )

    rate_limiter_service = providers.Factory(
        RateLimiterService,
        bucket_store=rate_limit_bucket_store,
        audit_service=audit_service,
        rate_limits=config.CALENDAR_ACCESS_RATE_LIMITS,
    )

    access_token_store = providers.Factory(
        DjangoAccessTokenStore,
    )

    access_token_validator = providers.Factory(
        AccessTokenValidator,
        access_token_store=access_token_store,
    )

    permission_resolver_service = providers.Factory(
        PermissionResolverService,
        access_token_validator=access_token_validator,
        allow_anonymous_guest_access=config.CALENDAR_ACCESS_ALLOW_ANONYMOUS_GUEST_ACCESS,
    )

    subscription_service = providers.Factory(
        SubscriptionService,
        permission_resolver_service=permission_resolver_service,
    )

    share_registry_service = providers.Factory(
        ShareRegistryService,
        permission_resolver_service=permission_resolver_service,
        rate_limiter_service=rate_limiter_service,
        subscription_service=subscription_service,
        audit_service=audit_service,
    )

    access_token_service = providers.Factory(
        AccessTokenService,
        access_token_store=access_token_store,
        access_token_validator=access_token_validator,
        permission_resolver_service=permission_resolver_service,
        rate_limiter_service=rate_limiter_service,
        subscription_service=subscription_service,
        audit_service=audit_service,
        token_preview_length=config.CALENDAR_ACCESS_TOKEN_PREVIEW_LENGTH,
    )

    calendar_service = providers.Factory(
        CalendarService,
        permission_resolver_service=permission_resolver_service,
        rate_limiter_service=rate_limiter_service,
        audit_service=audit_service,
    )


container: AppContainer | None = None  # set during app startup
