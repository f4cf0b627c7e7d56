from pyrate_limiter import AbstractBucket, InMemoryBucket, Rate

from calendar_access.services.rate_limit_bucket_stores.base_bucket_store import BaseBucketStore


class InMemoryBucketStore(BaseBucketStore):
    """
    Process-local counters. Only correct when the service runs a single worker process.
    """

    def create_bucket(self, key: str, rates: list[Rate]) -> AbstractBucket:
        return InMemoryBucket(rates)
