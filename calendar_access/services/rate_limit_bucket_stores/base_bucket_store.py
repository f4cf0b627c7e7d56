import threading
from collections.abc import Sequence

from pyrate_limiter import (
    AbstractBucket,
    AbstractClock,
    BucketFactory,
    Limiter,
    Rate,
    RateItem,
    TimeClock,
)


class BaseBucketStore(BucketFactory):
    """
    Routes every rate limit key to its own bucket behind a single limiter.

    All buckets are registered with the factory's leaker, so the store runs one leak thread no
    matter how many keys it serves. A bucket idle for longer than its widest rate window holds no
    counts that matter anymore and is dropped on the next sweep.
    """

    sweep_interval_ms = 10_000

    def __init__(self, clock: AbstractClock | None = None):
        self.clock = clock or TimeClock()
        self._lock = threading.RLock()
        self._buckets: dict[str, AbstractBucket] = {}
        self._idle_after: dict[str, int] = {}
        self._next_sweep_at = 0
        self.limiter = Limiter(self, clock=self.clock, raise_when_fail=True)

    def create_bucket(self, key: str, rates: list[Rate]) -> AbstractBucket:
        raise NotImplementedError

    def wrap_item(self, name: str, weight: int = 1) -> RateItem:
        return RateItem(name, self.clock.now(), weight=weight)

    def get(self, item: RateItem) -> AbstractBucket:
        return self._buckets[item.name]

    def schedule_leak(self, new_bucket: AbstractBucket, associated_clock: AbstractClock) -> None:
        # a leaker thread exits once it has nothing to leak and cannot be started again
        leaker = self._leaker
        if leaker is not None and leaker.ident is not None and not leaker.is_alive():
            self._leaker = None
        super().schedule_leak(new_bucket, associated_clock)

    def get_bucket(self, key: str, rates: Sequence[Rate]) -> AbstractBucket:
        with self._lock:
            now = self.clock.now()
            self._sweep(now)
            if key not in self._buckets:
                rates = list(rates)
                bucket = self.create_bucket(key, rates)
                self.schedule_leak(bucket, self.clock)
                self._buckets[key] = bucket
            self._idle_after[key] = now + max(rate.interval for rate in rates)
            return self._buckets[key]

    def try_acquire(self, key: str, rates: Sequence[Rate]) -> None:
        with self._lock:
            self.get_bucket(key, rates)
            self.limiter.try_acquire(key)

    def bucket_count(self) -> int:
        return len(self._buckets)

    def _sweep(self, now: int) -> None:
        if now < self._next_sweep_at:
            return
        self._next_sweep_at = now + self.sweep_interval_ms

        for key in [key for key, idle_after in self._idle_after.items() if idle_after <= now]:
            self.dispose(self._buckets.pop(key))
            del self._idle_after[key]
