"""Rate limiting for HTTP routes.

Two ways to apply a policy:

- ``rate_limit(policy)``: per-route FastAPI dependency
- ``RateLimitMiddleware``: global middleware using the default policy from
  settings, skipping exempt paths

Both call the RateLimitService stored on ``app.state.rate_limit_service``.
A normal denial is a 429; a fail-closed store outage is a 503.
"""

import time
from typing import Optional

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from admission.app.core.config import settings
from admission.app.core.logging import get_log_context, get_logger
from admission.app.core.utils import hash_identifier
from admission.app.exceptions import (
    RateLimitExceededError,
    RateLimitUnavailableError,
)
from admission.app.middleware.identity import get_client_key
from admission.app.services.rate_limit import (
    Outcome,
    RateLimitPolicy,
    RateLimitResult,
    RateLimitService,
)

logger = get_logger(__name__)


def build_rate_limit_headers(
    result: RateLimitResult, now: Optional[float] = None
) -> dict[str, str]:
    """Build X-RateLimit-* headers from whatever the result knows.

    Remaining and Reset are omitted when quota is unknown. Denials also get
    Retry-After.
    """
    if not settings.rate_limit_include_headers:
        return {}

    headers = {"X-RateLimit-Limit": str(result.limit)}
    if result.remaining is not None:
        headers["X-RateLimit-Remaining"] = str(result.remaining)
    if result.reset_at is not None:
        headers["X-RateLimit-Reset"] = str(result.reset_at)
        if result.outcome == Outcome.DENIED:
            now = time.time() if now is None else now
            headers["Retry-After"] = str(max(0, int(result.reset_at - now)))
    return headers


def get_rate_limit_service(request: Request) -> RateLimitService:
    """Return the RateLimitService attached to the running application."""
    return request.app.state.rate_limit_service


def get_request_time(request: Request) -> float:
    """Current time from the clock the limiters run on."""
    clock = getattr(request.app.state, "clock", time.time)
    return clock()


async def enforce_rate_limit(request: Request, policy: RateLimitPolicy) -> RateLimitResult:
    """Consume one unit for the caller and raise if it is not admitted.

    Raises:
        RateLimitExceededError: quota used up (429)
        RateLimitUnavailableError: store down under fail_closed (503)
    """
    key = get_client_key(request)
    service = get_rate_limit_service(request)
    result = await service.consume(key, policy)
    headers = build_rate_limit_headers(result, now=get_request_time(request))

    log_extra = get_log_context(
        request_id=request.headers.get("X-Request-ID"),
        client_key=hash_identifier(key, 16),
        algorithm=policy.algorithm.value,
        path=request.url.path,
        method=request.method,
        remaining=result.remaining,
        decision_source=result.source.value,
    )

    if result.outcome == Outcome.UNAVAILABLE:
        logger.warning("rate_limit.unavailable", extra=log_extra)
        raise RateLimitUnavailableError(headers=headers)

    if result.outcome == Outcome.DENIED:
        logger.info("rate_limit.exceeded", extra=log_extra)
        raise RateLimitExceededError(headers=headers)

    logger.debug("rate_limit.allowed", extra=log_extra)
    return result


def rate_limit(policy: RateLimitPolicy):
    """Build a FastAPI dependency enforcing policy on a route.

    The policy is validated when the route is declared, so a bad algorithm
    or bound fails at startup rather than per request.

    Example:
        @app.get("/api/test", dependencies=[Depends(rate_limit(policy))])
    """
    if not isinstance(policy, RateLimitPolicy):
        raise TypeError("rate_limit() expects a RateLimitPolicy")

    async def dependency(request: Request, response: Response) -> Optional[RateLimitResult]:
        if not settings.rate_limit_enabled:
            return None
        result = await enforce_rate_limit(request, policy)
        for name, value in build_rate_limit_headers(result, now=get_request_time(request)).items():
            response.headers[name] = value
        return result

    return dependency


def rate_limit_error_response(
    exc: RateLimitExceededError | RateLimitUnavailableError,
) -> JSONResponse:
    """Render a rate limit exception as a JSON response with headers."""
    if isinstance(exc, RateLimitUnavailableError):
        content = {"error": "rate_limit_unavailable", "message": exc.message}
    else:
        content = {"error": "rate_limit_exceeded", "message": exc.message}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce the default policy on every non-exempt path.

    Rate limits are applied per API key if available, then per authenticated
    user, otherwise per IP.
    """

    def __init__(
        self,
        app,
        policy: Optional[RateLimitPolicy] = None,
        exempt_paths: Optional[list[str]] = None,
    ):
        super().__init__(app)
        self.policy = policy or settings.default_policy()
        self.exempt_paths = set(
            exempt_paths if exempt_paths is not None else settings.rate_limit_exempt_paths
        )

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if not settings.rate_limit_enabled or request.url.path in self.exempt_paths:
            return await call_next(request)

        try:
            result = await enforce_rate_limit(request, self.policy)
        except (RateLimitExceededError, RateLimitUnavailableError) as exc:
            # Exception handlers do not run for errors raised in BaseHTTPMiddleware
            return rate_limit_error_response(exc)
        except HTTPException as exc:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        response = await call_next(request)
        for name, value in build_rate_limit_headers(result, now=get_request_time(request)).items():
            response.headers.setdefault(name, value)
        return response
