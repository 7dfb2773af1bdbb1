"""In-process fixed window limiter used while the shared store is down.

This is a degraded substitute, not an emulation of the configured algorithm:
every policy is enforced as a per-process fixed window starting at the first
request. With N instances behind a load balancer a client can get up to N
times the configured limit while the store is unavailable.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from admission.app.services.rate_limit.models import (
    DecisionSource,
    RateLimitPolicy,
    RateLimitResult,
)


@dataclass
class FallbackEntry:
    """Per-key window state for the local fallback limiter."""
    count: int
    reset_at: int


class LocalFallbackLimiter:
    """Store-independent fixed window limiter.

    Memory optimization:
    - Uses OrderedDict for LRU cache behavior
    - Limits max entries to prevent unbounded memory growth

    Once over max_entries, keys whose window has expired are dropped first.
    Only then are live keys evicted in LRU order, and an evicted client
    starts a fresh window on its next request. That reset is part of the
    degraded guarantee this limiter gives.
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the fallback limiter.

        Args:
            max_entries: Maximum number of keys to track (LRU eviction)
            clock: Time source returning UNIX time in seconds
        """
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, FallbackEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self, now: int) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_at]
        for key in expired:
            del self._entries[key]

    def _enforce_lru_limit(self, now: int) -> None:
        """Evict expired keys, then least recently used keys, once over max_entries."""
        if len(self._entries) <= self._max_entries:
            return
        self._purge_expired(now)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def consume(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Consume one unit for key in this process only."""
        if not key:
            raise ValueError("key must be a non-empty string")

        async with self._lock:
            now = int(self._clock())
            entry = self._entries.get(key)

            if entry is None or now >= entry.reset_at:
                entry = FallbackEntry(count=1, reset_at=now + policy.window_seconds)
                self._entries[key] = entry
                self._entries.move_to_end(key)
                self._enforce_lru_limit(now)
                return RateLimitResult(
                    allowed=True,
                    remaining=max(0, policy.limit - 1),
                    reset_at=entry.reset_at,
                    limit=policy.limit,
                    source=DecisionSource.LOCAL,
                )

            self._entries.move_to_end(key)

            if entry.count >= policy.limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=entry.reset_at,
                    limit=policy.limit,
                    source=DecisionSource.LOCAL,
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=max(0, policy.limit - entry.count),
                reset_at=entry.reset_at,
                limit=policy.limit,
                source=DecisionSource.LOCAL,
            )

