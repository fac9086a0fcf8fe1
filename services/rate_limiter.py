"""Fixed-window request counting per key."""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_IDLE_TTL_SECONDS = 600.0
_EVICTION_INTERVAL_CALLS = 1024


@dataclass
class RateLimitBucket:
    """Request counter for one key within the current window."""

    window_start: float
    count: int = 0
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)


class FixedWindowRateLimiter:
    """Accept at most ``limit`` operations per key in each fixed window.

    The window is fixed, not sliding: a burst straddling a reset can admit up
    to ``2 * limit`` requests in a short span. Each bucket has its own lock;
    there is no lock shared across keys. Idle eviction is not coordinated
    with those locks, so a call racing the eviction of its own key can count
    against a bucket that is dropped a moment later; only keys idle for
    longer than ``idle_ttl_seconds`` are affected.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        idle_ttl_seconds: float = DEFAULT_IDLE_TTL_SECONDS,
    ) -> None:
        self.window_seconds = window_seconds
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._calls = itertools.count(1)

    def try_consume(self, key: str, limit: int) -> bool:
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            # setdefault is atomic, so racing callers share one bucket.
            bucket = self._buckets.setdefault(key, RateLimitBucket(window_start=now))

        with bucket.lock:
            if now - bucket.window_start > self.window_seconds:
                bucket.window_start = now
                bucket.count = 0
            bucket.count += 1
            accepted = bucket.count <= limit

        if next(self._calls) % _EVICTION_INTERVAL_CALLS == 0:
            self.evict_idle()
        return accepted

    def remaining(self, key: str, limit: int) -> int:
        bucket = self._buckets.get(key)
        if bucket is None:
            return limit
        now = self._clock()
        with bucket.lock:
            if now - bucket.window_start > self.window_seconds:
                return limit
            return max(limit - bucket.count, 0)

    def evict_idle(self) -> int:
        """Drop buckets whose window ended more than ``idle_ttl_seconds`` ago."""
        horizon = self.window_seconds + self.idle_ttl_seconds
        now = self._clock()
        evicted = 0
        for key, bucket in list(self._buckets.items()):
            if now - bucket.window_start > horizon:
                # Only remove the bucket we inspected, not a fresh replacement.
                if self._buckets.get(key) is bucket:
                    self._buckets.pop(key, None)
                    evicted += 1
        return evicted

    def __len__(self) -> int:
        return len(self._buckets)
