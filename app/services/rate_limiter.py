"""Token buckets for the submission endpoints.

A bucket holds up to ``capacity`` tokens and gains ``refill_rate`` tokens
per second.  Every quiz attempt or upload spends one.  A learner may
double-click "submit"; a script looping over the endpoint runs dry.

``InMemoryRateLimiter`` keeps buckets in a dict (one set per process).
``RedisRateLimiter`` keeps them in Redis hashes, shared by all instances.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    name: str = "default"
    capacity: int = 60
    refill_rate: float = 1.0  # tokens per second


QUIZ_SUBMIT_LIMIT = RateLimitConfig(name="quiz_submit", capacity=30, refill_rate=0.5)
UPLOAD_LIMIT = RateLimitConfig(name="upload", capacity=10, refill_rate=0.1)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float = 0.0


def spend_token(
    tokens: float | None, elapsed: float, config: RateLimitConfig
) -> tuple[float, RateLimitResult]:
    """Refill a bucket for ``elapsed`` seconds and try to take one token.

    ``tokens`` is None for a bucket that does not exist yet, which starts
    full.  Returns the bucket's new level alongside the verdict.
    """
    if tokens is None:
        level = float(config.capacity)
    else:
        level = min(config.capacity, tokens + max(elapsed, 0.0) * config.refill_rate)

    if level < 1:
        wait = (1 - level) / config.refill_rate
        return level, RateLimitResult(False, 0, config.capacity, wait)

    level -= 1
    return level, RateLimitResult(True, int(level), config.capacity)


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    def __init__(self) -> None:
        # "<config name>:<key>" -> (level, monotonic time of last update)
        self._buckets: dict[str, tuple[float, float]] = {}

    def clear(self) -> None:
        self._buckets.clear()

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        bucket_key = f"{config.name}:{key}"
        now = time.monotonic()
        previous = self._buckets.get(bucket_key)
        if previous is None:
            level, result = spend_token(None, 0.0, config)
        else:
            level, result = spend_token(previous[0], now - previous[1], config)
        self._buckets[bucket_key] = (level, now)
        return result

    async def reset(self, key: str) -> None:
        suffix = f":{key}"
        for bucket_key in [k for k in self._buckets if k.endswith(suffix)]:
            del self._buckets[bucket_key]


# Same arithmetic as spend_token, run atomically inside Redis.
# KEYS[1] = bucket hash; ARGV = capacity, refill_rate, now (epoch seconds).
# Replies {allowed, remaining, retry_after_ms}.
_SPEND_TOKEN_LUA = """
local capacity = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local state = redis.call('HMGET', KEYS[1], 'level', 'updated')
local level = tonumber(state[1])
if level == nil then
    level = capacity
else
    local elapsed = math.max(0, now - tonumber(state[2]))
    level = math.min(capacity, level + elapsed * rate)
end

local allowed = 0
local wait_ms = 0
if level >= 1 then
    level = level - 1
    allowed = 1
else
    wait_ms = math.ceil((1 - level) / rate * 1000)
end

redis.call('HSET', KEYS[1], 'level', level, 'updated', now)
redis.call('EXPIRE', KEYS[1], math.ceil(capacity / rate) + 60)
return {allowed, math.floor(level) * allowed, wait_ms}
"""


class RedisRateLimiter:
    key_prefix = "lms:ratelimit"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._spend = redis_client.register_script(_SPEND_TOKEN_LUA)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        allowed, remaining, wait_ms = await self._spend(
            keys=[f"{self.key_prefix}:{config.name}:{key}"],
            args=[config.capacity, config.refill_rate, time.time()],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=int(remaining),
            limit=config.capacity,
            retry_after=int(wait_ms) / 1000,
        )

    async def reset(self, key: str) -> None:
        for name in (QUIZ_SUBMIT_LIMIT.name, UPLOAD_LIMIT.name, "default"):
            await self._redis.delete(f"{self.key_prefix}:{name}:{key}")
