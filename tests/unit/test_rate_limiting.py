"""
Unit tests for the per-sender sliding window rate limiter.
"""

import pytest

from taskbridge.services.rate_limiter import RateLimitConfig, RateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(RateLimitConfig(requests=3, window_seconds=60, max_keys=2), clock=clock)


@pytest.mark.asyncio
async def test_allows_up_to_limit_then_denies(limiter):
    results = [await limiter.is_allowed("user-1") for _ in range(4)]
    assert results == [True, True, True, False]


@pytest.mark.asyncio
async def test_check_reports_remaining(limiter):
    allowed, info = await limiter.check("user-1")

    assert allowed is True
    assert info["remaining"] == 2
    assert info["limit"] == 3
    assert info["reset_seconds"] == 60


@pytest.mark.asyncio
async def test_window_slides(limiter, clock):
    for _ in range(3):
        await limiter.is_allowed("user-1")
    assert await limiter.is_allowed("user-1") is False

    clock.advance(61)

    assert await limiter.is_allowed("user-1") is True


@pytest.mark.asyncio
async def test_denied_requests_do_not_consume(limiter, clock):
    for _ in range(3):
        await limiter.is_allowed("user-1")
    clock.advance(30)
    await limiter.is_allowed("user-1")
    clock.advance(31)

    # The original three hits expired; the denied one was never recorded
    allowed, info = await limiter.check("user-1")
    assert allowed is True
    assert info["remaining"] == 2


@pytest.mark.asyncio
async def test_keys_are_independent(limiter):
    for _ in range(3):
        await limiter.is_allowed("user-1")

    assert await limiter.is_allowed("user-1") is False
    assert await limiter.is_allowed("user-2") is True


@pytest.mark.asyncio
async def test_check_without_consume(limiter):
    for _ in range(5):
        allowed, _ = await limiter.check("user-1", consume=False)
        assert allowed is True


@pytest.mark.asyncio
async def test_least_recently_seen_key_is_evicted(limiter):
    for _ in range(3):
        await limiter.is_allowed("user-1")
    await limiter.is_allowed("user-2")
    await limiter.is_allowed("user-3")

    stats = limiter.get_stats()
    assert stats["active_keys"] == 2
    # user-1 was evicted, so its history is gone
    assert await limiter.is_allowed("user-1") is True


@pytest.mark.asyncio
async def test_reset(limiter):
    for _ in range(3):
        await limiter.is_allowed("user-1")

    limiter.reset("user-1")

    assert await limiter.is_allowed("user-1") is True
