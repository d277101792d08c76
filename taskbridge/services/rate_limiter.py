"""
Rate Limiter Service - per-sender admission control for inbound messages.

Features:
- Sliding window per key (sender id)
- Per-key asyncio locks
- Bounded key space: the least recently seen keys are evicted first
"""

import asyncio
import logging
import time
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit."""
    requests: int        # Max requests in window
    window_seconds: int  # Window size in seconds
    max_keys: int = 10000


class RateLimiter:
    """
    Sliding window rate limiter, held for the lifetime of the process.

    Deny is a result value, never an exception.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or RateLimitConfig(
            requests=settings.inbound_rate_limit_hits,
            window_seconds=settings.inbound_rate_limit_window_seconds,
            max_keys=settings.inbound_rate_limit_max_keys,
        )
        self._clock = clock
        # {key: [timestamp, ...]} in insertion order of last use
        self._hits: "OrderedDict[str, List[float]]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _evict_if_needed(self) -> None:
        while len(self._hits) > self.config.max_keys:
            key, _ = self._hits.popitem(last=False)
            self._locks.pop(key, None)

    async def check(self, key: str, consume: bool = True) -> Tuple[bool, Dict[str, Any]]:
        """
        Check whether ``key`` may proceed.

        Returns:
            Tuple of (allowed, info) where info has remaining, limit, reset_seconds
        """
        async with self._locks[key]:
            now = self._clock()
            window_start = now - self.config.window_seconds

            hits = [ts for ts in self._hits.get(key, []) if ts > window_start]
            allowed = len(hits) < self.config.requests

            if allowed and consume:
                hits.append(now)

            self._hits[key] = hits
            self._hits.move_to_end(key)

            reset_seconds = self.config.window_seconds - (now - hits[0]) if hits else self.config.window_seconds
            info = {
                "allowed": allowed,
                "remaining": max(0, self.config.requests - len(hits)),
                "limit": self.config.requests,
                "reset_seconds": max(0, round(reset_seconds)),
            }

        self._evict_if_needed()

        if not allowed:
            logger.warning(f"Rate limit exceeded for sender {key}")
        return allowed, info

    async def is_allowed(self, key: str) -> bool:
        """Quick check; consumes a slot if allowed."""
        allowed, _ = await self.check(key)
        return allowed

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_keys": len(self._hits),
            "total_tracked_requests": sum(len(h) for h in self._hits.values()),
            "limit": self.config.requests,
            "window_seconds": self.config.window_seconds,
        }

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or everything."""
        if key is None:
            self._hits.clear()
            self._locks.clear()
        else:
            self._hits.pop(key, None)
            self._locks.pop(key, None)


# Singleton
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the rate limiter singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter
