from __future__ import annotations

import asyncio

from course_platform.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
)


def test_in_memory_limiter_satisfies_protocol() -> None:
    assert isinstance(InMemoryRateLimiter(), RateLimiter)


def test_bucket_allows_burst_then_blocks() -> None:
    async def scenario() -> list[bool]:
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(capacity=3, refill_rate=0.001)
        return [(await limiter.check("k", config)).allowed for _ in range(5)]

    assert asyncio.run(scenario()) == [True, True, True, False, False]


def test_blocked_result_reports_retry_after() -> None:
    async def scenario():
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(capacity=1, refill_rate=0.5)
        await limiter.check("k", config)
        return await limiter.check("k", config)

    result = asyncio.run(scenario())
    assert result.allowed is False
    assert result.remaining == 0
    assert result.limit == 1
    assert 0 < result.retry_after <= 2


def test_keys_have_separate_buckets_and_reset() -> None:
    async def scenario() -> tuple[bool, bool, bool]:
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(capacity=1, refill_rate=0.001)
        await limiter.check("login:ip:1.1.1.1", config)
        other = (await limiter.check("login:ip:2.2.2.2", config)).allowed
        blocked = (await limiter.check("login:ip:1.1.1.1", config)).allowed
        await limiter.reset("login:ip:1.1.1.1")
        again = (await limiter.check("login:ip:1.1.1.1", config)).allowed
        return other, blocked, again

    assert asyncio.run(scenario()) == (True, False, True)
