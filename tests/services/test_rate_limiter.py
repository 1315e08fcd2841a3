from __future__ import annotations

import asyncio

from app.services.rate_limiter import InMemoryRateLimiter, RateLimitConfig, spend_token

BURST = RateLimitConfig(capacity=3, refill_rate=0.001)


def test_allows_burst_then_blocks() -> None:
    limiter = InMemoryRateLimiter()

    async def scenario():
        return [await limiter.check("user:1", BURST) for _ in range(4)]

    results = asyncio.run(scenario())
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results[:3]] == [2, 1, 0]
    assert results[3].retry_after > 0
    assert results[3].limit == 3


def test_buckets_are_per_key() -> None:
    limiter = InMemoryRateLimiter()

    async def scenario():
        for _ in range(3):
            await limiter.check("user:1", BURST)
        return await limiter.check("user:2", BURST)

    assert asyncio.run(scenario()).allowed is True


def test_reset_refills_bucket() -> None:
    limiter = InMemoryRateLimiter()

    async def scenario():
        for _ in range(4):
            await limiter.check("ip:1.2.3.4", BURST)
        await limiter.reset("ip:1.2.3.4")
        return await limiter.check("ip:1.2.3.4", BURST)

    assert asyncio.run(scenario()).allowed is True


def test_limits_keep_separate_buckets_for_one_key() -> None:
    limiter = InMemoryRateLimiter()
    other = RateLimitConfig(name="other", capacity=1, refill_rate=0.001)

    async def scenario():
        for _ in range(4):
            await limiter.check("user:1", BURST)
        return await limiter.check("user:1", other)

    assert asyncio.run(scenario()).allowed is True


def test_spend_token_refills_up_to_capacity() -> None:
    level, result = spend_token(0.0, 10_000, BURST)
    assert result.allowed is True
    assert level == 2
    assert result.remaining == 2


def test_spend_token_reports_wait_for_empty_bucket() -> None:
    config = RateLimitConfig(capacity=5, refill_rate=0.5)
    level, result = spend_token(0.5, 0.0, config)
    assert result.allowed is False
    assert level == 0.5
    assert result.retry_after == 1.0
