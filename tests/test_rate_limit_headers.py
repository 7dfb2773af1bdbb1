"""Tests for X-RateLimit header construction."""

from admission.app.core.config import settings
from admission.app.middleware.rate_limit import build_rate_limit_headers
from admission.app.services.rate_limit import DecisionSource, RateLimitResult


def test_allowed_result_headers():
    result = RateLimitResult(allowed=True, remaining=3, reset_at=1010, limit=5)

    headers = build_rate_limit_headers(result, now=1000)

    assert headers == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "3",
        "X-RateLimit-Reset": "1010",
    }


def test_denied_result_adds_retry_after():
    result = RateLimitResult(allowed=False, remaining=0, reset_at=1010, limit=5)

    headers = build_rate_limit_headers(result, now=1003.5)

    assert headers["Retry-After"] == "6"


def test_retry_after_never_negative():
    result = RateLimitResult(allowed=False, remaining=0, reset_at=1010, limit=5)

    assert build_rate_limit_headers(result, now=2000)["Retry-After"] == "0"


def test_unknown_quota_only_reports_limit():
    result = RateLimitResult(
        allowed=True,
        remaining=None,
        reset_at=None,
        limit=5,
        source=DecisionSource.FAIL_OPEN,
    )

    assert build_rate_limit_headers(result, now=1000) == {"X-RateLimit-Limit": "5"}


def test_fail_closed_has_no_retry_after():
    result = RateLimitResult(
        allowed=False,
        remaining=None,
        reset_at=None,
        limit=5,
        source=DecisionSource.FAIL_CLOSED,
    )

    assert "Retry-After" not in build_rate_limit_headers(result, now=1000)


def test_headers_disabled(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_include_headers", False)
    result = RateLimitResult(allowed=True, remaining=3, reset_at=1010, limit=5)

    assert build_rate_limit_headers(result, now=1000) == {}
