"""Unit tests for the fixed-window rate limiter."""

from __future__ import annotations

import threading

from services.rate_limiter import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_limit_applies_within_one_window() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, clock=clock)

    results = [limiter.try_consume("client-a", 3) for _ in range(5)]

    assert results == [True, True, True, False, False]


def test_window_boundary_resets_count() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, clock=clock)
    for _ in range(4):
        limiter.try_consume("client-a", 3)

    clock.advance(61)

    assert limiter.try_consume("client-a", 3) is True
    assert limiter.remaining("client-a", 3) == 2


def test_window_is_still_open_at_exactly_sixty_seconds() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, clock=clock)
    for _ in range(3):
        limiter.try_consume("client-a", 3)

    clock.advance(60)

    assert limiter.try_consume("client-a", 3) is False


def test_fixed_window_admits_burst_across_boundary() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, clock=clock)
    assert limiter.try_consume("client-a", 3)

    clock.advance(59.5)
    burst = [limiter.try_consume("client-a", 3) for _ in range(2)]
    clock.advance(0.6)
    burst += [limiter.try_consume("client-a", 3) for _ in range(3)]

    # Five requests accepted within ~0.6 seconds even though the limit is 3.
    assert burst == [True, True, True, True, True]


def test_keys_are_counted_independently() -> None:
    limiter = FixedWindowRateLimiter(clock=FakeClock())

    assert limiter.try_consume("client-a", 1) is True
    assert limiter.try_consume("client-a", 1) is False
    assert limiter.try_consume("client-b", 1) is True


def test_remaining_for_unknown_key_does_not_create_bucket() -> None:
    limiter = FixedWindowRateLimiter(clock=FakeClock())

    assert limiter.remaining("nobody", 5) == 5
    assert len(limiter) == 0


def test_remaining_never_goes_negative() -> None:
    limiter = FixedWindowRateLimiter(clock=FakeClock())
    for _ in range(4):
        limiter.try_consume("client-a", 2)

    assert limiter.remaining("client-a", 2) == 0


def test_evict_idle_drops_only_expired_buckets() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, clock=clock, idle_ttl_seconds=120)
    limiter.try_consume("old", 5)
    clock.advance(150)
    limiter.try_consume("recent", 5)
    clock.advance(40)

    evicted = limiter.evict_idle()

    assert evicted == 1
    assert len(limiter) == 1
    assert limiter.remaining("recent", 5) == 4


def test_idle_buckets_are_evicted_during_regular_traffic() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, clock=clock, idle_ttl_seconds=120)
    limiter.try_consume("old", 5)
    clock.advance(150)

    for _ in range(1022):
        limiter.try_consume("recent", 5000)
    assert len(limiter) == 2

    limiter.try_consume("recent", 5000)

    assert len(limiter) == 1
    assert limiter.remaining("recent", 5000) == 5000 - 1023


def test_concurrent_callers_never_exceed_limit() -> None:
    limiter = FixedWindowRateLimiter(window_seconds=60)
    accepted: list[bool] = []
    accepted_lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait(timeout=5)
        local = [limiter.try_consume("shared", 100) for _ in range(50)]
        with accepted_lock:
            accepted.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(accepted) == 400
    assert sum(accepted) == 100
