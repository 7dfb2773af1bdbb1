"""Leaky bucket rate limiter using an atomic Redis Lua script."""

import math

from admission.app.services.rate_limit.base import (
    LuaScript,
    RateLimitAlgorithm,
    clamp_remaining,
)
from admission.app.services.rate_limit.models import (
    Algorithm,
    RateLimitPolicy,
    RateLimitResult,
)
from admission.app.services.rate_limit.redis_lua import LEAKY_BUCKET_SCRIPT


class LeakyBucketLimiter(RateLimitAlgorithm):
    """Queue that drains at limit / window_seconds units per second.

    A request adds one unit of water and is admitted only if the bucket does
    not overflow. Drain, test and add run as one Lua call.

    Redis key format: leaky_bucket:{key} (hash with water, ts)
    """

    algorithm = Algorithm.LEAKY_BUCKET
    namespace = "leaky_bucket"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.script = LuaScript(LEAKY_BUCKET_SCRIPT, name="leaky_bucket")

    async def _consume(
        self, key: str, policy: RateLimitPolicy, now: int
    ) -> RateLimitResult:
        leak_rate = policy.rate
        allowed_flag, water = await self.script.execute(
            self._redis,
            keys=[self._make_key(key)],
            args=[policy.limit, leak_rate, now, policy.window_seconds * 2],
        )
        water = float(water)

        return RateLimitResult(
            allowed=int(allowed_flag) == 1,
            remaining=clamp_remaining(policy.limit - math.ceil(water), policy.limit),
            reset_at=now + math.ceil(water / leak_rate),
            limit=policy.limit,
        )
