import logging
import math
from collections.abc import Mapping
from typing import Annotated

from dependency_injector.wiring import Provide, inject
from pyrate_limiter import AbstractBucket, BucketFullException, Duration, Rate, RateItem, TimeClock
from redis.exceptions import RedisError

from calendar_access.constants import AuditAction, AuditResourceType
from calendar_access.exceptions import RateLimitedError
from calendar_access.services.audit_service import AuditService
from calendar_access.services.dataclasses import (
    RateLimitAllowed,
    RateLimitDecision,
    RateLimitDenied,
)
from calendar_access.services.protocols.rate_limit_bucket_store import RateLimitBucketStore


logger = logging.getLogger(__name__)


class RateLimiterService:
    """
    Window throttle for abuse-prone mutations, keyed by (actor, action kind, resource).

    `rate_limits` maps an action kind to `(limit, window_in_seconds)`. Action kinds without a
    policy, or with a limit of 0, are never throttled. The check and the write it guards are not
    atomic, so a small over-admission is possible under heavy concurrency.
    """

    @inject
    def __init__(
        self,
        bucket_store: Annotated[RateLimitBucketStore, Provide["rate_limit_bucket_store"]],
        audit_service: Annotated[AuditService, Provide["audit_service"]],
        rate_limits: Annotated[
            Mapping[str, tuple[int, int]], Provide["config.CALENDAR_ACCESS_RATE_LIMITS"]
        ],
    ):
        self.bucket_store = bucket_store
        self.audit_service = audit_service
        self.rate_limits = rate_limits or {}

    @staticmethod
    def build_key(actor_key: object, action_kind: str, resource_key: object | None = None) -> str:
        if resource_key is None:
            return f"{actor_key}:{action_kind}"
        return f"{actor_key}:{action_kind}:{resource_key}"

    def get_rates(self, action_kind: str) -> list[Rate]:
        limit, window_seconds = self.rate_limits.get(action_kind, (0, 0))
        if not limit or not window_seconds:
            return []
        return [Rate(int(limit), int(window_seconds) * Duration.SECOND.value)]

    def check(
        self, actor_key: object, action_kind: str, resource_key: object | None = None
    ) -> RateLimitDecision:
        """
        Consume one slot for the given key.
        :param actor_key: Identity of the caller, usually the user id.
        :param action_kind: One of `RateLimitedAction`.
        :param resource_key: Resource the limit is scoped to, e.g. the calendar id.
        :return: RateLimitAllowed, or RateLimitDenied carrying the seconds to wait.
        """
        key = self.build_key(actor_key, action_kind, resource_key)
        rates = self.get_rates(action_kind)
        if not rates:
            return RateLimitAllowed(key=key)

        try:
            self.bucket_store.try_acquire(key, rates)
        except BucketFullException:
            bucket = self.bucket_store.get_bucket(key, rates)
            retry_after = self._get_retry_after(bucket, key, rates)
            logger.warning("Rate limit hit for %s, retry after %ss", key, retry_after)
            self.audit_service.admin_event(
                AuditAction.RATE_LIMIT_HIT,
                AuditResourceType.RATE_LIMIT,
                resource_id=resource_key,
                user_id=actor_key,
                metadata={"action_kind": action_kind, "retry_after": retry_after},
            )
            return RateLimitDenied(key=key, retry_after=retry_after)
        except RedisError:
            # fail open
            logger.exception("Unable to reach the rate limit store for %s", key)
        return RateLimitAllowed(key=key)

    def enforce(
        self, actor_key: object, action_kind: str, resource_key: object | None = None
    ) -> None:
        decision = self.check(actor_key, action_kind, resource_key)
        if isinstance(decision, RateLimitDenied):
            raise RateLimitedError(retry_after=decision.retry_after)

    @staticmethod
    def _get_retry_after(bucket: AbstractBucket, key: str, rates: list[Rate]) -> int:
        waiting_ms = bucket.waiting(RateItem(key, TimeClock().now()))
        if not isinstance(waiting_ms, int | float) or waiting_ms <= 0:
            waiting_ms = max(rate.interval for rate in rates)
        return max(1, math.ceil(waiting_ms / Duration.SECOND.value))
