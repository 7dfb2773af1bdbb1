"""Tests for the fixed window limiter."""

import pytest

from admission.app.exceptions import StoreUnavailableError
from admission.app.services.rate_limit import (
    DecisionSource,
    FixedWindowLimiter,
    Outcome,
    RateLimitPolicy,
)
from conftest import START_TIME


class TestFixedWindowLimiter:
    """Tests for counting inside epoch-aligned windows."""

    @pytest.fixture
    def limiter(self, redis_client, clock):
        return FixedWindowLimiter(redis_client, clock=clock)

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, limiter, small_policy):
        """Test that the first `limit` requests are allowed with decreasing remaining."""
        for expected_remaining in (4, 3, 2, 1, 0):
            result = await limiter.consume("client-a", small_policy)
            assert result.allowed is True
            assert result.remaining == expected_remaining
            assert result.limit == 5
            assert result.source == DecisionSource.STORE

    @pytest.mark.asyncio
    async def test_denies_over_limit(self, limiter, small_policy):
        """Test that the request after the limit is denied."""
        for _ in range(5):
            await limiter.consume("client-a", small_policy)

        result = await limiter.consume("client-a", small_policy)
        assert result.allowed is False
        assert result.remaining == 0
        assert result.outcome == Outcome.DENIED

    @pytest.mark.asyncio
    async def test_reset_at_is_window_end(self, limiter, clock, small_policy):
        """Test that reset_at is the end of the aligned window, not now + window."""
        clock.advance(3)
        result = await limiter.consume("client-a", small_policy)
        assert result.reset_at == int(START_TIME) + 10

    @pytest.mark.asyncio
    async def test_new_window_resets_count(self, limiter, clock, small_policy):
        """Test that the count starts over when the window rolls."""
        for _ in range(6):
            await limiter.consume("client-a", small_policy)

        clock.advance(10)
        result = await limiter.consume("client-a", small_policy)
        assert result.allowed is True
        assert result.remaining == 4
        assert result.reset_at == int(START_TIME) + 20

    @pytest.mark.asyncio
    async def test_boundary_burst(self, limiter, clock, small_policy):
        """Test that a full burst on each side of a boundary is admitted."""
        clock.advance(9)
        for _ in range(5):
            assert (await limiter.consume("client-a", small_policy)).allowed

        clock.advance(1)
        for _ in range(5):
            assert (await limiter.consume("client-a", small_policy)).allowed

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, limiter, small_policy):
        """Test that exhausting one key does not affect another."""
        for _ in range(6):
            await limiter.consume("client-a", small_policy)

        result = await limiter.consume("client-b", small_policy)
        assert result.allowed is True
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_counter_has_window_ttl(self, limiter, redis_client, small_policy):
        """Test that the counter is created with a TTL of one window."""
        await limiter.consume("client-a", small_policy)

        key = f"fixed_window:client-a:{int(START_TIME)}"
        assert int(await redis_client.get(key)) == 1
        ttl = await redis_client.ttl(key)
        assert 0 < ttl <= 10

    @pytest.mark.asyncio
    async def test_ttl_not_extended_by_later_requests(self, limiter, redis_client, small_policy):
        """Test that only the first request in a window sets the expiry."""
        await limiter.consume("client-a", small_policy)
        key = f"fixed_window:client-a:{int(START_TIME)}"
        await redis_client.expire(key, 3)

        await limiter.consume("client-a", small_policy)
        assert await redis_client.ttl(key) <= 3

    @pytest.mark.asyncio
    async def test_limit_of_one(self, limiter):
        """Test the smallest possible policy."""
        policy = RateLimitPolicy(limit=1, window_seconds=1)
        assert (await limiter.consume("client-a", policy)).allowed is True
        assert (await limiter.consume("client-a", policy)).allowed is False

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, limiter, small_policy):
        """Test that an empty key is a caller error."""
        with pytest.raises(ValueError):
            await limiter.consume("", small_policy)

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, broken_redis, clock, small_policy):
        """Test that Redis errors surface as StoreUnavailableError."""
        limiter = FixedWindowLimiter(broken_redis, clock=clock)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await limiter.consume("client-a", small_policy)
        assert exc_info.value.error_type == "connection_error"
