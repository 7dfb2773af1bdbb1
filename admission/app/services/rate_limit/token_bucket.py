"""Token bucket rate limiter using an atomic Redis Lua script."""

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
from admission.app.services.rate_limit.redis_lua import TOKEN_BUCKET_SCRIPT


class TokenBucketLimiter(RateLimitAlgorithm):
    """Continuous-refill token bucket.

    Capacity is policy.limit and tokens refill at limit / window_seconds per
    second. A new bucket starts full. The refill, debit and write happen in
    one Lua call so concurrent callers cannot both spend the same token.

    Redis key format: token_bucket:{key} (hash with tokens, ts)

    reset_at is when the bucket would be full again, not when the next
    single token arrives.
    """

    algorithm = Algorithm.TOKEN_BUCKET
    namespace = "token_bucket"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")

    async def _consume(
        self, key: str, policy: RateLimitPolicy, now: int
    ) -> RateLimitResult:
        refill_rate = policy.rate
        allowed_flag, tokens = await self.script.execute(
            self._redis,
            keys=[self._make_key(key)],
            args=[policy.limit, refill_rate, now, policy.window_seconds * 2],
        )
        tokens = float(tokens)

        return RateLimitResult(
            allowed=int(allowed_flag) == 1,
            remaining=clamp_remaining(math.floor(tokens), policy.limit),
            reset_at=now + math.ceil((policy.limit - tokens) / refill_rate),
            limit=policy.limit,
        )
