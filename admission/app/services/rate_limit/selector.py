"""Algorithm selection for rate limit policies."""

import time
from typing import Any, Callable, Mapping

from admission.app.exceptions import UnsupportedAlgorithmError
from admission.app.services.rate_limit.base import RateLimitAlgorithm
from admission.app.services.rate_limit.fixed_window import FixedWindowLimiter
from admission.app.services.rate_limit.leaky_bucket import LeakyBucketLimiter
from admission.app.services.rate_limit.models import Algorithm, parse_algorithm
from admission.app.services.rate_limit.sliding_window import SlidingWindowLimiter
from admission.app.services.rate_limit.token_bucket import TokenBucketLimiter

LIMITER_CLASSES: dict[Algorithm, type[RateLimitAlgorithm]] = {
    Algorithm.FIXED_WINDOW: FixedWindowLimiter,
    Algorithm.SLIDING_WINDOW: SlidingWindowLimiter,
    Algorithm.TOKEN_BUCKET: TokenBucketLimiter,
    Algorithm.LEAKY_BUCKET: LeakyBucketLimiter,
}


class AlgorithmSelector:
    """Maps algorithm tags to long-lived limiter instances.

    Instances are built once and reused so the bucket limiters keep their
    registered Lua script SHA across requests.
    """

    def __init__(self, limiters: Mapping[Algorithm, RateLimitAlgorithm]) -> None:
        self._limiters = dict(limiters)

    def select(self, algorithm: object) -> RateLimitAlgorithm:
        """Return the limiter for an algorithm tag.

        Raises:
            UnsupportedAlgorithmError: If the tag is unknown or not configured
        """
        tag = parse_algorithm(algorithm)
        limiter = self._limiters.get(tag)
        if limiter is None:
            raise UnsupportedAlgorithmError(algorithm)
        return limiter

    @property
    def algorithms(self) -> list[Algorithm]:
        return list(self._limiters)


def build_selector(
    redis_client: Any, clock: Callable[[], float] = time.time
) -> AlgorithmSelector:
    """Build a selector with one limiter per supported algorithm.

    Args:
        redis_client: Async Redis client shared by all limiters
        clock: Time source returning UNIX time in seconds

    Returns:
        AlgorithmSelector with all four algorithms registered
    """
    return AlgorithmSelector(
        {tag: cls(redis_client, clock=clock) for tag, cls in LIMITER_CLASSES.items()}
    )
