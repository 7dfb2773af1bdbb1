"""Rate limit decision orchestration.

RateLimitService is the single entry point the HTTP layer calls. It picks the
limiter for a policy, runs it, and when the shared store fails applies the
policy's failure strategy:

- fail_open: allow, quota unknown
- fail_closed: refuse with an "unavailable" outcome (HTTP 503, not 429)
- local_fallback: decide with the in-process fixed window limiter

Only store failures are handled here. Anything else is a bug and propagates.
"""

import time
from typing import TYPE_CHECKING, Any, Callable, Optional

from admission.app.core.config import settings
from admission.app.core.logging import get_log_context, get_logger
from admission.app.core.utils import hash_identifier
from admission.app.exceptions import StoreUnavailableError
from admission.app.services.rate_limit.local_fallback import LocalFallbackLimiter
from admission.app.services.rate_limit.models import (
    DecisionSource,
    FailureStrategy,
    RateLimitPolicy,
    RateLimitResult,
)
from admission.app.services.rate_limit.selector import AlgorithmSelector, build_selector

if TYPE_CHECKING:
    from admission.app.api.metrics import MetricsCollector

logger = get_logger(__name__)


class RateLimitService:
    """Orchestrates limiter selection and failure handling.

    Provides:
    - One long-lived limiter per algorithm (via AlgorithmSelector)
    - Failure strategy dispatch on store errors
    - Optional decision metrics
    """

    def __init__(
        self,
        selector: AlgorithmSelector,
        fallback: LocalFallbackLimiter,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self._selector = selector
        self._fallback = fallback
        self._metrics = metrics

    @property
    def selector(self) -> AlgorithmSelector:
        return self._selector

    @property
    def fallback(self) -> LocalFallbackLimiter:
        return self._fallback

    async def consume(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Decide whether key may consume one unit under policy.

        Args:
            key: Opaque client identity
            policy: Route policy

        Returns:
            RateLimitResult; check result.outcome to tell a denial from an
            unavailable store under fail_closed.
        """
        limiter = self._selector.select(policy.algorithm)
        try:
            result = await limiter.consume(key, policy)
        except StoreUnavailableError as e:
            if self._metrics is not None:
                await self._metrics.record_store_error(policy.algorithm.value, e.error_type)
            result = await self.handle_failure(policy.failure_strategy, key, policy, e)

        if self._metrics is not None:
            await self._metrics.record_decision(policy.algorithm.value, result.outcome.value)
        return result

    async def handle_failure(
        self,
        strategy: FailureStrategy,
        key: str,
        policy: RateLimitPolicy,
        error: StoreUnavailableError,
    ) -> RateLimitResult:
        """Turn a store failure into a decision according to strategy."""
        log_extra = get_log_context(
            client_key=hash_identifier(key, 16),
            algorithm=policy.algorithm.value,
            failure_strategy=strategy.value,
            error_type=error.error_type,
        )
        if self._metrics is not None:
            await self._metrics.record_failure_strategy(strategy.value)

        if strategy == FailureStrategy.FAIL_CLOSED:
            logger.warning(
                f"Rate limit store unavailable, failing closed: {error}",
                extra=log_extra,
            )
            return RateLimitResult(
                allowed=False,
                remaining=None,
                reset_at=None,
                limit=policy.limit,
                source=DecisionSource.FAIL_CLOSED,
            )

        if strategy == FailureStrategy.LOCAL_FALLBACK:
            logger.warning(
                f"Rate limit store unavailable, using local fallback limiter: {error}",
                extra=log_extra,
            )
            return await self._fallback.consume(key, policy)

        logger.warning(
            f"Rate limit store unavailable, failing open: {error}",
            extra=log_extra,
        )
        return RateLimitResult(
            allowed=True,
            remaining=None,
            reset_at=None,
            limit=policy.limit,
            source=DecisionSource.FAIL_OPEN,
        )


def build_rate_limit_service(
    redis_client: Any,
    clock: Callable[[], float] = time.time,
    metrics: Optional["MetricsCollector"] = None,
    fallback_max_entries: Optional[int] = None,
) -> RateLimitService:
    """Wire a RateLimitService with all limiters sharing one Redis client."""
    max_entries = fallback_max_entries
    if max_entries is None:
        max_entries = settings.rate_limit_fallback_max_entries
    return RateLimitService(
        selector=build_selector(redis_client, clock=clock),
        fallback=LocalFallbackLimiter(max_entries=max_entries, clock=clock),
        metrics=metrics,
    )
