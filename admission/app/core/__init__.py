"""Core utilities for the admission gateway."""

from admission.app.core.config import Settings, settings
from admission.app.core.logging import get_logger, setup_logging
from admission.app.core.redis_client import close_redis_client, create_redis_client
from admission.app.core.utils import hash_identifier

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
    "create_redis_client",
    "close_redis_client",
    "hash_identifier",
]
