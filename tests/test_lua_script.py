"""Tests for lazy Lua script registration."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import NoScriptError, ResponseError

from admission.app.exceptions import ScriptRegistrationError, StoreUnavailableError
from admission.app.services.rate_limit import (
    TOKEN_BUCKET_SCRIPT,
    LuaScript,
    TokenBucketLimiter,
)


def make_script_client(sha=b"abc123", evalsha_result=None):
    client = Mock()
    client.script_load = AsyncMock(return_value=sha)
    client.evalsha = AsyncMock(return_value=evalsha_result or [1, b"4"])
    return client


class TestLuaScriptLoad:
    """Tests for SHA caching."""

    @pytest.mark.asyncio
    async def test_load_decodes_and_caches_sha(self):
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        client = make_script_client()

        assert await script.load(client) == "abc123"
        assert await script.load(client) == "abc123"
        assert script.sha == "abc123"
        client.script_load.assert_awaited_once_with(TOKEN_BUCKET_SCRIPT)

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_register_once(self):
        """Test that racing first callers share a single SCRIPT LOAD."""
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        client = Mock()

        async def slow_load(source):
            await asyncio.sleep(0.01)
            return "abc123"

        client.script_load = AsyncMock(side_effect=slow_load)

        shas = await asyncio.gather(*(script.load(client) for _ in range(10)))

        assert set(shas) == {"abc123"}
        assert client.script_load.await_count == 1

    @pytest.mark.asyncio
    async def test_load_error_raises_registration_error(self):
        script = LuaScript("return nonsense(", name="broken")
        client = Mock()
        client.script_load = AsyncMock(
            side_effect=ResponseError("Error compiling script")
        )

        with pytest.raises(ScriptRegistrationError) as exc_info:
            await script.load(client)
        assert exc_info.value.error_type == "script_error"
        assert isinstance(exc_info.value, StoreUnavailableError)
        assert script.sha is None

    def test_invalidate_only_forgets_matching_sha(self):
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        script._sha = "abc123"

        script.invalidate("other")
        assert script.sha == "abc123"

        script.invalidate("abc123")
        assert script.sha is None


class TestLuaScriptExecute:
    """Tests for EVALSHA and NOSCRIPT recovery."""

    @pytest.mark.asyncio
    async def test_execute_passes_keys_and_args(self):
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        client = make_script_client()

        result = await script.execute(client, keys=["token_bucket:k"], args=[5, 0.5, 100, 20])

        assert result == [1, b"4"]
        client.evalsha.assert_awaited_once_with(
            "abc123", 1, "token_bucket:k", 5, 0.5, 100, 20
        )

    @pytest.mark.asyncio
    async def test_noscript_reregisters_once(self):
        """Test that a flushed script cache is recovered transparently."""
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        client = make_script_client()
        client.evalsha = AsyncMock(
            side_effect=[NoScriptError("No matching script"), [1, b"4"]]
        )

        result = await script.execute(client, keys=["k"], args=[])

        assert result == [1, b"4"]
        assert client.script_load.await_count == 2
        assert client.evalsha.await_count == 2

    @pytest.mark.asyncio
    async def test_second_noscript_is_registration_error(self):
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        client = make_script_client()
        client.evalsha = AsyncMock(side_effect=NoScriptError("No matching script"))

        with pytest.raises(ScriptRegistrationError):
            await script.execute(client, keys=["k"], args=[])
        assert client.evalsha.await_count == 2

    @pytest.mark.asyncio
    async def test_script_runtime_error_is_registration_error(self):
        script = LuaScript(TOKEN_BUCKET_SCRIPT, name="token_bucket")
        client = make_script_client()
        client.evalsha = AsyncMock(side_effect=ResponseError("WRONGTYPE Operation"))

        with pytest.raises(ScriptRegistrationError):
            await script.execute(client, keys=["k"], args=[])


class TestLuaScriptWithRedis:
    """Tests against fakeredis with a real Lua runtime."""

    @pytest.mark.asyncio
    async def test_recovers_after_script_flush(self, redis_client, clock, small_policy):
        limiter = TokenBucketLimiter(redis_client, clock=clock)
        first = await limiter.consume("client-a", small_policy)
        sha = limiter.script.sha

        await redis_client.script_flush()
        second = await limiter.consume("client-a", small_policy)

        assert first.remaining == 4
        assert second.remaining == 3
        assert limiter.script.sha == sha
        assert await redis_client.script_exists(sha) == [True]
