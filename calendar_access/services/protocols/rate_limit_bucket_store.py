from collections.abc import Sequence
from typing import Protocol

from pyrate_limiter import AbstractBucket, Rate


class RateLimitBucketStore(Protocol):
    """
    Counter store behind the rate limiter. Implementations must hand out the same bucket for the
    same key while the key is in use, and may drop buckets that have been idle past their window.
    """

    def get_bucket(self, key: str, rates: Sequence[Rate]) -> AbstractBucket:
        """
        Return the bucket holding the counters of `key`, creating it when missing.
        :param key: Fully qualified rate limit key (actor, action kind and resource).
        :param rates: Rates applied when the bucket does not exist yet.
        """
        ...

    def try_acquire(self, key: str, rates: Sequence[Rate]) -> None:
        """
        Consume one slot of `key`.
        :raises BucketFullException: when any of the rates is exhausted.
        """
        ...

    def bucket_count(self) -> int: ...
