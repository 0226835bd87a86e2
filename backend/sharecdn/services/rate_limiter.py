import time
from typing import Callable


class RateBucket:
    __slots__ = ("tokens", "last_refill")

    def __init__(self, tokens: float, last_refill: float):
        self.tokens = tokens
        self.last_refill = last_refill


class TokenBucketLimiter:
    """Per-key token bucket.

    Each key starts with a full bucket of ``capacity`` tokens which refills
    continuously at ``refill_rate`` tokens per second. Buckets live for the
    lifetime of the process and are never evicted.
    """

    def __init__(
        self,
        capacity: int = 20,
        refill_rate: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_rate < 0:
            raise ValueError("refill_rate must not be negative")
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}

    def allow(self, key: str) -> bool:
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = RateBucket(tokens=float(self.capacity), last_refill=now)
            self._buckets[key] = bucket

        elapsed = max(0.0, now - bucket.last_refill)
        bucket.tokens = min(float(self.capacity), bucket.tokens + elapsed * self.refill_rate)
        bucket.last_refill = now

        if bucket.tokens >= 1:
            bucket.tokens -= 1
            return True
        return False

    def tokens_for(self, key: str) -> float | None:
        bucket = self._buckets.get(key)
        return bucket.tokens if bucket else None

    def __len__(self) -> int:
        return len(self._buckets)
