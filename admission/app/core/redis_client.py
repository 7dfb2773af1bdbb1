"""Redis client construction for the shared rate limit store."""

from typing import Any, Optional

import redis.asyncio as aioredis

from admission.app.core.config import settings
from admission.app.core.logging import get_logger

logger = get_logger(__name__)


def create_redis_client(redis_url: Optional[str] = None) -> Any:
    """Create an async Redis client with the configured socket timeouts.

    The client connects lazily, so an unreachable server only shows up on
    the first command, where it becomes a store failure.

    Args:
        redis_url: Redis connection URL. Defaults to settings.redis_url.

    Returns:
        redis.asyncio.Redis instance
    """
    url = redis_url or settings.redis_url
    client = aioredis.from_url(
        url,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
    )
    logger.debug("Created Redis client for rate limit store")
    return client


async def close_redis_client(client: Any) -> None:
    """Close a Redis client, logging instead of raising on shutdown errors."""
    if client is None:
        return
    try:
        # Use aclose() for proper async cleanup in redis-py 5.0+
        await client.aclose()
    except Exception as e:
        logger.warning(f"Error closing Redis connection: {e}")


async def ping_store(client: Any) -> bool:
    """Return True when the store answers PING."""
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
