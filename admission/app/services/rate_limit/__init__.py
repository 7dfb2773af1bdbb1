"""Rate limit decision engine.

This package provides four Redis-backed algorithms (fixed window, sliding
window, token bucket, leaky bucket), an in-process fallback limiter, and the
service that applies fail-open / fail-closed / local-fallback strategies
when Redis is unavailable.
"""

from .base import LuaScript, RateLimitAlgorithm
from .fixed_window import FixedWindowLimiter
from .leaky_bucket import LeakyBucketLimiter
from .local_fallback import LocalFallbackLimiter
from .models import (
    Algorithm,
    DecisionSource,
    FailureStrategy,
    Outcome,
    RateLimitPolicy,
    RateLimitResult,
)
from .redis_lua import LEAKY_BUCKET_SCRIPT, TOKEN_BUCKET_SCRIPT
from .selector import AlgorithmSelector, build_selector
from .service import RateLimitService, build_rate_limit_service
from .sliding_window import SlidingWindowLimiter
from .token_bucket import TokenBucketLimiter

__all__ = [
    "Algorithm",
    "DecisionSource",
    "FailureStrategy",
    "Outcome",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimitAlgorithm",
    "LuaScript",
    "FixedWindowLimiter",
    "SlidingWindowLimiter",
    "TokenBucketLimiter",
    "LeakyBucketLimiter",
    "LocalFallbackLimiter",
    "AlgorithmSelector",
    "build_selector",
    "RateLimitService",
    "build_rate_limit_service",
    "TOKEN_BUCKET_SCRIPT",
    "LEAKY_BUCKET_SCRIPT",
]
