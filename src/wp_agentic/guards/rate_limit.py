"""Fixed-window rate limiting over :class:`~wp_agentic.guards.kv.SharedStore`.

The algorithm is approximate (bursts around window boundaries are
possible); it exists to dampen abuse, not to meter exactly.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from wp_agentic.clock import Clock, default_clock, now_ms
from wp_agentic.errors import RateLimitedError
from wp_agentic.guards.kv import SharedStore

_LOG = logging.getLogger("wp-agentic.guards.rate_limit")

_KEY_PREFIX = "rl:v1:"


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds

    def retry_after(self, *, clock: Clock = default_clock) -> int:
        """Whole seconds until the window resets (at least 1)."""
        return max(1, math.ceil((self.reset_at - now_ms(clock)) / 1000))


class RateLimiter:
    def __init__(self, store: SharedStore, *, clock: Clock = default_clock) -> None:
        self.store = store
        self._clock = clock

    async def allow(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        """Count one request for *key*; allowed iff the new count <= *max_requests*."""
        count, ttl_ms = await self.store.incr_window(_KEY_PREFIX + key, window_ms)
        result = RateLimitResult(
            allowed=count <= max_requests,
            remaining=max(0, max_requests - count),
            reset_at=now_ms(self._clock) + ttl_ms,
        )
        if not result.allowed:
            _LOG.warning("Rate limit exceeded key=%s count=%s max=%s", key, count, max_requests)
        return result

    async def enforce(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        """Like :meth:`allow` but raise :class:`RateLimitedError` when rejected."""
        result = await self.allow(key, window_ms, max_requests)
        if not result.allowed:
            raise RateLimitedError(retry_after=result.retry_after(clock=self._clock))
        return result
