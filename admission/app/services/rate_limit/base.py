"""Shared contract for store-backed rate limiters.

Every algorithm exposes ``consume(key, policy) -> RateLimitResult``. Store
errors are translated to StoreUnavailableError and re-raised; deciding what
to do about them is the orchestrator's job.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Sequence

import redis
from redis.exceptions import NoScriptError, ResponseError

from admission.app.core.logging import get_logger
from admission.app.exceptions import ScriptRegistrationError, StoreUnavailableError
from admission.app.services.rate_limit.models import (
    Algorithm,
    RateLimitPolicy,
    RateLimitResult,
)

logger = get_logger(__name__)

Clock = Callable[[], float]


@contextmanager
def translate_store_errors(algorithm: str) -> Iterator[None]:
    """Re-raise Redis and network failures as StoreUnavailableError."""
    try:
        yield
    except StoreUnavailableError:
        raise
    except (redis.TimeoutError, asyncio.TimeoutError) as e:
        raise StoreUnavailableError(
            f"{algorithm}: Redis timeout: {e}", error_type="timeout"
        ) from e
    except (redis.ConnectionError, ConnectionError, OSError) as e:
        raise StoreUnavailableError(
            f"{algorithm}: Redis connection failed: {e}", error_type="connection_error"
        ) from e
    except redis.RedisError as e:
        raise StoreUnavailableError(
            f"{algorithm}: Redis error: {e}", error_type="redis_error"
        ) from e


class LuaScript:
    """Lazily registered Lua script with a cached SHA.

    The SHA is loaded at most once per instance; concurrent first callers
    wait on the lock and reuse the winner's SHA. SCRIPT LOAD of identical
    source returns the same SHA, so a redundant registration is harmless.
    """

    def __init__(self, source: str, name: str) -> None:
        self.source = source
        self.name = name
        self._sha: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def sha(self) -> Optional[str]:
        return self._sha

    async def load(self, redis_client: Any) -> str:
        """Return the cached SHA, registering the script on first use."""
        if self._sha is not None:
            return self._sha
        async with self._lock:
            if self._sha is not None:
                return self._sha
            try:
                sha = await redis_client.script_load(self.source)
            except ResponseError as e:
                raise ScriptRegistrationError(
                    f"Failed to load Lua script {self.name}: {e}"
                ) from e
            if isinstance(sha, bytes):
                sha = sha.decode()
            self._sha = sha
            logger.info(f"Loaded rate limit Lua script {self.name}: {sha}")
            return sha

    def invalidate(self, sha: str) -> None:
        """Forget a SHA the server no longer knows."""
        if self._sha == sha:
            self._sha = None

    async def execute(
        self, redis_client: Any, keys: Sequence[str], args: Sequence[Any]
    ) -> Any:
        """Run the script via EVALSHA, re-registering once on NOSCRIPT."""
        sha = await self.load(redis_client)
        try:
            try:
                return await redis_client.evalsha(sha, len(keys), *keys, *args)
            except NoScriptError:
                logger.warning(f"Lua script {self.name} missing on server, re-registering")
                self.invalidate(sha)
                sha = await self.load(redis_client)
                return await redis_client.evalsha(sha, len(keys), *keys, *args)
        except ResponseError as e:
            raise ScriptRegistrationError(
                f"Lua script {self.name} failed: {e}"
            ) from e


class RateLimitAlgorithm(ABC):
    """Abstract base class for store-backed rate limit algorithms."""

    algorithm: Algorithm
    namespace: str

    def __init__(self, redis_client: Any, clock: Clock = time.time) -> None:
        """Initialize the limiter.

        Args:
            redis_client: Async Redis client (redis.asyncio.Redis compatible)
            clock: Time source returning UNIX time in seconds
        """
        self._redis = redis_client
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _make_key(self, key: str, *parts: object) -> str:
        return ":".join([self.namespace, key, *(str(p) for p in parts)])

    async def consume(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Consume one unit of quota for key under policy.

        Args:
            key: Opaque client identity
            policy: Rate limit policy for the route

        Returns:
            RateLimitResult with the decision and quota bookkeeping

        Raises:
            ValueError: If key is empty
            StoreUnavailableError: If the shared store cannot be reached
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        with translate_store_errors(self.algorithm.value):
            return await self._consume(key, policy, self._now())

    @abstractmethod
    async def _consume(
        self, key: str, policy: RateLimitPolicy, now: int
    ) -> RateLimitResult:
        """Algorithm-specific decision against the store."""
        pass


def clamp_remaining(value: int, limit: int) -> int:
    """Clamp a remaining count to [0, limit]."""
    return max(0, min(limit, value))
