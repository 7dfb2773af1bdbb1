"""Sliding window rate limiter approximated with two fixed windows.

The previous window's count is weighted by how much of it still overlaps
the sliding window ending now:

    effective = current + floor(previous * (window - elapsed) / window)

This keeps O(1) state per key. It over- or under-counts relative to an exact
sliding log depending on how traffic was spread across the previous window.
"""

import math

from admission.app.services.rate_limit.base import RateLimitAlgorithm, clamp_remaining
from admission.app.services.rate_limit.models import (
    Algorithm,
    RateLimitPolicy,
    RateLimitResult,
)


class SlidingWindowLimiter(RateLimitAlgorithm):
    """Weighted two-window sliding limiter.

    Redis key format: sliding_window:{key}:{window_start}

    Counters live for two windows so the previous one is still readable
    while the next window is current.
    """

    algorithm = Algorithm.SLIDING_WINDOW
    namespace = "sliding_window"

    async def _consume(
        self, key: str, policy: RateLimitPolicy, now: int
    ) -> RateLimitResult:
        window = policy.window_seconds
        current_start = (now // window) * window
        previous_start = current_start - window
        current_key = self._make_key(key, current_start)
        previous_key = self._make_key(key, previous_start)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(current_key, 0, ex=window * 2, nx=True)
            pipe.incr(current_key)
            pipe.get(previous_key)
            _, current_count, previous_raw = await pipe.execute()

        current_count = int(current_count)
        previous_count = int(previous_raw) if previous_raw is not None else 0

        elapsed = now - current_start
        overlap_ratio = (window - elapsed) / window
        effective_count = current_count + math.floor(previous_count * overlap_ratio)

        return RateLimitResult(
            allowed=effective_count <= policy.limit,
            remaining=clamp_remaining(policy.limit - effective_count, policy.limit),
            reset_at=current_start + window,
            limit=policy.limit,
        )
