"""Shared fixtures for the admission gateway tests."""

from unittest.mock import AsyncMock, Mock

import fakeredis
import pytest
import redis

from admission.app.services.rate_limit import RateLimitPolicy

# Divisible by every window length used in the tests
START_TIME = 1_200_000.0


class FakeClock:
    """Manually advanced time source for the limiters."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_broken_redis(error: Exception = None) -> Mock:
    """Redis stand-in whose every command fails like an unreachable server."""
    error = error or redis.ConnectionError("Connection refused")
    client = Mock()
    client.pipeline.side_effect = error
    client.script_load = AsyncMock(side_effect=error)
    client.evalsha = AsyncMock(side_effect=error)
    client.ping = AsyncMock(side_effect=error)
    return client


@pytest.fixture
def clock():
    """Clock parked on a window boundary."""
    return FakeClock()


@pytest.fixture
def redis_client():
    """Async fakeredis client on its own server, with Lua support."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


@pytest.fixture
def broken_redis():
    return make_broken_redis()


@pytest.fixture
def small_policy():
    """5 requests per 10 seconds (rate 0.5/s)."""
    return RateLimitPolicy(limit=5, window_seconds=10)
