import time
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from admission.app.api.metrics import MetricsCollector, MetricsMiddleware
from admission.app.api.metrics import router as metrics_router
from admission.app.core.config import settings
from admission.app.core.logging import get_logger, setup_logging
from admission.app.core.redis_client import (
    close_redis_client,
    create_redis_client,
    ping_store,
)
from admission.app.exceptions import (
    AdmissionError,
    RateLimitExceededError,
    RateLimitUnavailableError,
)
from admission.app.middleware.rate_limit import (
    RateLimitMiddleware,
    rate_limit,
    rate_limit_error_response,
)
from admission.app.services.rate_limit import (
    Algorithm,
    RateLimitPolicy,
    build_rate_limit_service,
)

# Demo route policy: 5 requests per 10 seconds, sliding window
TEST_ROUTE_POLICY = RateLimitPolicy(
    limit=5,
    window_seconds=10,
    algorithm=Algorithm.SLIDING_WINDOW,
)


def create_app(
    redis_client: Optional[Any] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        redis_client: Async Redis client to use instead of one built from settings
        clock: Time source for the rate limiters

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)
    metrics = MetricsCollector()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the rate limit engine on startup and close Redis on shutdown."""
        owns_client = redis_client is None
        client = create_redis_client() if owns_client else redis_client

        app.state.redis = client
        app.state.rate_limit_service = build_rate_limit_service(
            client, clock=clock, metrics=metrics
        )

        logger.info(
            "Application startup complete",
            extra={
                "algorithms": [a.value for a in app.state.rate_limit_service.selector.algorithms],
                "failure_strategy": settings.rate_limit_failure_strategy,
                "debug_mode": settings.debug,
            },
        )

        yield

        if owns_client:
            await close_redis_client(client)
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Admission Gateway",
        description="Rate limiting with fixed window, sliding window, token bucket and leaky bucket algorithms",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.metrics = metrics
    app.state.clock = clock

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
        max_age=600,
    )

    app.add_middleware(MetricsMiddleware, collector=metrics)

    if settings.rate_limit_global_enabled:
        app.add_middleware(RateLimitMiddleware)

    app.include_router(metrics_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with shared store status."""
        store_ok = await ping_store(request.app.state.redis)
        return {
            "status": "ok" if store_ok else "degraded",
            "components": {
                "store": {"status": "ok" if store_ok else "error"},
            },
        }

    @app.get("/api/test", dependencies=[Depends(rate_limit(TEST_ROUTE_POLICY))])
    async def test_route() -> dict[str, str]:
        return {"message": "Request successful"}

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        """Handle RateLimitExceededError and return HTTP 429 response."""
        return rate_limit_error_response(exc)

    @app.exception_handler(RateLimitUnavailableError)
    async def rate_limit_unavailable_handler(request: Request, exc: RateLimitUnavailableError) -> JSONResponse:
        """Handle RateLimitUnavailableError and return HTTP 503 response."""
        return rate_limit_error_response(exc)

    @app.exception_handler(AdmissionError)
    async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
        """Handle configuration and store errors that reached the HTTP layer."""
        logger.error(
            f"Admission error: {exc.message}",
            extra={"exception_type": type(exc).__name__, "path": request.url.path},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "admission_error", "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns raw traceback to client; full details are logged.
        """
        tb_str = traceback.format_exc()
        request_id = request.headers.get("X-Request-ID", "unknown")

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": tb_str,
            },
        )

        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            },
        )

    return app


# Create the application instance
app = create_app()
