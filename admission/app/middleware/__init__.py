"""Middleware package for the admission gateway."""

from admission.app.middleware.identity import get_client_key
from admission.app.middleware.rate_limit import (
    RateLimitMiddleware,
    build_rate_limit_headers,
    enforce_rate_limit,
    rate_limit,
)

__all__ = [
    "get_client_key",
    "RateLimitMiddleware",
    "build_rate_limit_headers",
    "enforce_rate_limit",
    "rate_limit",
]
