"""Tests for the fixed-window rate limiter."""
from concurrent.futures import ThreadPoolExecutor

from conftest import FakeClock
from rate_limiting.limiter import RateLimiter


def test_first_request_opens_window(clock):
    limiter = RateLimiter(clock=clock)
    result = limiter.check("client", 3, 60_000)
    assert result.allowed
    assert result.remaining == 2
    assert result.reset_time == clock.now() + 60
    assert result.limit == 3


def test_blocks_after_max_requests(clock):
    limiter = RateLimiter(clock=clock)
    results = [limiter.check("client", 3, 60_000) for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]


def test_blocked_check_does_not_increment(clock):
    limiter = RateLimiter(clock=clock)
    for _ in range(5):
        limiter.check("client", 2, 60_000)
    assert limiter.get_entry("client").count == 2


def test_reset_time_constant_within_window(clock):
    limiter = RateLimiter(clock=clock)
    first = limiter.check("client", 5, 60_000)
    clock.advance(30)
    second = limiter.check("client", 5, 60_000)
    assert second.reset_time == first.reset_time


def test_window_resets_at_reset_time(clock):
    limiter = RateLimiter(clock=clock)
    limiter.check("client", 1, 1_000)
    assert not limiter.check("client", 1, 1_000).allowed

    clock.advance(1)
    result = limiter.check("client", 1, 1_000)
    assert result.allowed
    assert result.remaining == 0
    assert result.reset_time == clock.now() + 1


def test_identifiers_are_independent(clock):
    limiter = RateLimiter(clock=clock)
    limiter.check("a", 1, 60_000)
    assert not limiter.check("a", 1, 60_000).allowed
    assert limiter.check("b", 1, 60_000).allowed


def test_cleanup_removes_only_expired(clock):
    limiter = RateLimiter(clock=clock)
    limiter.check("old", 10, 1_000)
    clock.advance(0.5)
    limiter.check("new", 10, 60_000)
    clock.advance(1)

    assert limiter.cleanup() == 1
    assert limiter.get_entry("old") is None
    assert limiter.get_entry("new") is not None
    assert len(limiter) == 1


def test_cleanup_keeps_unexpired_entries(clock):
    limiter = RateLimiter(clock=clock)
    limiter.check("client", 10, 60_000)
    assert limiter.cleanup() == 0
    assert len(limiter) == 1


def test_reset_and_clear(clock):
    limiter = RateLimiter(clock=clock)
    limiter.check("a", 1, 60_000)
    limiter.check("b", 1, 60_000)
    limiter.reset("a")
    assert limiter.check("a", 1, 60_000).allowed
    limiter.clear()
    assert len(limiter) == 0


def test_concurrent_checks_never_exceed_limit():
    limiter = RateLimiter(clock=FakeClock())

    def hit(_):
        return limiter.check("shared", 50, 60_000).allowed

    with ThreadPoolExecutor(max_workers=20) as pool:
        results = list(pool.map(hit, range(200)))

    assert sum(results) == 50
    assert limiter.get_entry("shared").count == 50


def test_start_and_destroy_cleanup_job(clock):
    limiter = RateLimiter(clock=clock, cleanup_interval_seconds=60)
    limiter.start()
    assert limiter._cleanup_job.is_running
    limiter.destroy()
    assert not limiter._cleanup_job.is_running
