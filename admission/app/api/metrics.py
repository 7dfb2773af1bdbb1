"""Metrics and monitoring endpoints for the admission gateway.

This module provides Prometheus-compatible metrics for request traffic and
rate limit decisions, including store failures and which failure strategy
was applied.
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from admission.app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@dataclass
class RequestMetrics:
    """Metrics for a single endpoint."""

    count: int = 0
    total_duration: float = 0.0
    errors: int = 0


@dataclass
class MetricsCollector:
    """Collects and stores admission metrics.

    Guarded by an asyncio lock; collects:
    - Request counts and latencies per endpoint
    - Rate limit decisions per algorithm and outcome
    - Store errors per algorithm and error type
    - Failure strategy activations
    """

    _requests: Dict[str, RequestMetrics] = field(
        default_factory=lambda: defaultdict(RequestMetrics)
    )
    _decisions: Dict[Tuple[str, str], int] = field(default_factory=lambda: defaultdict(int))
    _store_errors: Dict[Tuple[str, str], int] = field(default_factory=lambda: defaultdict(int))
    _strategies: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _start_time: float = field(default_factory=time.time)

    async def record_request(
        self, endpoint: str, duration: float, status_code: int
    ) -> None:
        """Record a request metric.

        Args:
            endpoint: The endpoint path
            duration: Request duration in seconds
            status_code: HTTP status code
        """
        async with self._lock:
            metrics = self._requests[endpoint]
            metrics.count += 1
            metrics.total_duration += duration
            if status_code >= 400:
                metrics.errors += 1

    async def record_decision(self, algorithm: str, outcome: str) -> None:
        """Record a rate limit decision (allowed, denied or unavailable)."""
        async with self._lock:
            self._decisions[(algorithm, outcome)] += 1

    async def record_store_error(self, algorithm: str, error_type: str) -> None:
        """Record a shared store failure seen by an algorithm."""
        async with self._lock:
            self._store_errors[(algorithm, error_type)] += 1

    async def record_failure_strategy(self, strategy: str) -> None:
        """Record that a failure strategy was applied."""
        async with self._lock:
            self._strategies[strategy] += 1

    async def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics.

        Returns:
            Dictionary with metrics summary
        """
        async with self._lock:
            total_requests = sum(m.count for m in self._requests.values())
            total_errors = sum(m.errors for m in self._requests.values())

            decisions: Dict[str, Dict[str, int]] = defaultdict(dict)
            for (algorithm, outcome), count in self._decisions.items():
                decisions[algorithm][outcome] = count

            store_errors: Dict[str, Dict[str, int]] = defaultdict(dict)
            for (algorithm, error_type), count in self._store_errors.items():
                store_errors[algorithm][error_type] = count

            return {
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "total_requests": total_requests,
                "total_errors": total_errors,
                "endpoints": {
                    endpoint: {
                        "count": m.count,
                        "avg_duration_ms": round((m.total_duration / m.count) * 1000, 2),
                        "error_count": m.errors,
                    }
                    for endpoint, m in self._requests.items()
                    if m.count > 0
                },
                "decisions": dict(decisions),
                "store_errors": dict(store_errors),
                "failure_strategies": dict(self._strategies),
            }

    async def get_prometheus_metrics(self) -> str:
        """Get metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        async with self._lock:
            lines = []

            lines.append("# HELP admission_requests_total Total number of requests")
            lines.append("# TYPE admission_requests_total counter")
            for endpoint, metrics in self._requests.items():
                lines.append(
                    f'admission_requests_total{{endpoint="{endpoint}"}} {metrics.count}'
                )

            lines.append(
                "\n# HELP admission_request_duration_seconds Total request duration"
            )
            lines.append("# TYPE admission_request_duration_seconds counter")
            for endpoint, metrics in self._requests.items():
                lines.append(
                    f'admission_request_duration_seconds{{endpoint="{endpoint}"}} {metrics.total_duration}'
                )

            lines.append(
                "\n# HELP admission_rate_limit_decisions_total Rate limit decisions by outcome"
            )
            lines.append("# TYPE admission_rate_limit_decisions_total counter")
            for (algorithm, outcome), count in self._decisions.items():
                lines.append(
                    f'admission_rate_limit_decisions_total{{algorithm="{algorithm}",outcome="{outcome}"}} {count}'
                )

            lines.append(
                "\n# HELP admission_store_errors_total Shared store failures"
            )
            lines.append("# TYPE admission_store_errors_total counter")
            for (algorithm, error_type), count in self._store_errors.items():
                lines.append(
                    f'admission_store_errors_total{{algorithm="{algorithm}",error_type="{error_type}"}} {count}'
                )

            lines.append(
                "\n# HELP admission_failure_strategy_total Failure strategy activations"
            )
            lines.append("# TYPE admission_failure_strategy_total counter")
            for strategy, count in self._strategies.items():
                lines.append(
                    f'admission_failure_strategy_total{{strategy="{strategy}"}} {count}'
                )

            lines.append("\n# HELP admission_uptime_seconds Uptime in seconds")
            lines.append("# TYPE admission_uptime_seconds gauge")
            lines.append(
                f"admission_uptime_seconds{{}} {round(time.time() - self._start_time, 2)}"
            )

            return "\n".join(lines) + "\n"


def get_metrics_collector(request: Request) -> MetricsCollector:
    """Return the collector attached to the running application."""
    return request.app.state.metrics


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(request: Request) -> PlainTextResponse:
    """Prometheus-compatible metrics endpoint.

    Returns:
        Plain text response with Prometheus-formatted metrics
    """
    collector = get_metrics_collector(request)
    content = await collector.get_prometheus_metrics()
    return PlainTextResponse(
        content=content, media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@router.get("/stats")
async def admission_stats(request: Request) -> dict[str, Any]:
    """Detailed admission statistics as JSON."""
    collector = get_metrics_collector(request)
    return await collector.get_summary()


class MetricsMiddleware:
    """Middleware to collect request metrics.

    Example:
        app.add_middleware(MetricsMiddleware, collector=collector)
    """

    def __init__(self, app, collector: MetricsCollector):
        self.app = app
        self.collector = collector

    async def __call__(self, scope, receive, send):
        """Process request and collect metrics."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        status_code = 200

        async def wrapped_send(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 200)
            await send(message)

        try:
            await self.app(scope, receive, wrapped_send)
        except Exception:
            status_code = 500
            raise
        finally:
            duration = time.time() - start_time
            endpoint = scope.get("path", "unknown")
            await self.collector.record_request(endpoint, duration, status_code)
