"""Fixed window rate limiter backed by Redis counters."""

from admission.app.services.rate_limit.base import RateLimitAlgorithm, clamp_remaining
from admission.app.services.rate_limit.models import (
    Algorithm,
    RateLimitPolicy,
    RateLimitResult,
)


class FixedWindowLimiter(RateLimitAlgorithm):
    """Counts requests per key in discrete windows aligned to the epoch.

    Redis key format: fixed_window:{key}:{window_start}

    The counter is created with a TTL of one window inside the same
    MULTI/EXEC as the increment, so it never exists without an expiry.
    Counts above the limit are still recorded; remaining saturates at 0
    until the window rolls over.
    """

    algorithm = Algorithm.FIXED_WINDOW
    namespace = "fixed_window"

    async def _consume(
        self, key: str, policy: RateLimitPolicy, now: int
    ) -> RateLimitResult:
        window = policy.window_seconds
        window_start = (now // window) * window
        counter_key = self._make_key(key, window_start)

        async with self._redis.pipeline(transaction=True) as pipe:
            # SET NX only creates the key (with TTL) once per window
            pipe.set(counter_key, 0, ex=window, nx=True)
            pipe.incr(counter_key)
            _, count = await pipe.execute()

        count = int(count)
        return RateLimitResult(
            allowed=count <= policy.limit,
            remaining=clamp_remaining(policy.limit - count, policy.limit),
            reset_at=window_start + window,
            limit=policy.limit,
        )
