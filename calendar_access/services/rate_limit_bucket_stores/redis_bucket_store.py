from pyrate_limiter import AbstractBucket, Rate, RedisBucket
from redis import Redis

from calendar_access.services.rate_limit_bucket_stores.base_bucket_store import BaseBucketStore


class RedisBucketStore(BaseBucketStore):
    """
    Counters shared by every worker through redis, updated atomically by the bucket's lua script.
    """

    def __init__(self, redis_client: Redis, key_prefix: str = "calendar_access"):
        super().__init__()
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    def create_bucket(self, key: str, rates: list[Rate]) -> AbstractBucket:
        return RedisBucket.init(rates, self.redis_client, f"{self.key_prefix}:{key}")
