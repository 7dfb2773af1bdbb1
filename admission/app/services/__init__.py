"""Services package for the admission gateway.

This package provides:
- Rate limit algorithms over a shared Redis store
- Failure strategy orchestration with an in-process fallback
"""

from admission.app.services.rate_limit import (
    Algorithm,
    FailureStrategy,
    RateLimitPolicy,
    RateLimitResult,
    RateLimitService,
    build_rate_limit_service,
)

__all__ = [
    "Algorithm",
    "FailureStrategy",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimitService",
    "build_rate_limit_service",
]
