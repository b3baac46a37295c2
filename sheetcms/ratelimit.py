"""In-memory token bucket rate limiter keyed by client address."""

from __future__ import annotations

import time
from typing import Callable, Dict


class Bucket:
    __slots__ = ("tokens", "updated")

    def __init__(self, capacity: int, now: float) -> None:
        self.tokens = float(capacity)
        self.updated = now


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._buckets: Dict[str, Bucket] = {}

    def allow(self, key: str, rps: float, burst: int) -> bool:
        """Return True when ``key`` may proceed, consuming one token."""

        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = Bucket(burst, now)
        elapsed = now - bucket.updated
        bucket.tokens = min(float(burst), bucket.tokens + elapsed * max(rps, 0.0))
        bucket.updated = now
        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            return True
        return False

    def reset(self) -> None:
        self._buckets.clear()
