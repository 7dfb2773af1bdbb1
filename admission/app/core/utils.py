"""Utility functions for the admission gateway."""

import hashlib


def hash_identifier(value: str, length: int = 32) -> str:
    """Hash a client identifier so raw credentials never reach logs or Redis.

    Args:
        value: Raw identifier (API key, IP address)
        length: Number of hex characters to keep (32 = 128 bits)

    Returns:
        Truncated SHA-256 hex digest
    """
    return hashlib.sha256(value.encode()).hexdigest()[:length]
