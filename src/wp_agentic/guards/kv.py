"""Shared key/value store backing rate limits and idempotency records.

Uses Redis when ``REDIS_URL`` is configured and reachable, otherwise an
in-process TTL map. The fallback is only valid for a single process:
multi-instance deployments without Redis under-count true request volume
and cannot share idempotency records. Counters and records live in
separate caches; counter churn never evicts a record.

The store is an explicitly constructed object with :meth:`init` and
:meth:`close`; tests build isolated instances instead of relying on
module state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
from cachetools import TLRUCache
from redis.exceptions import RedisError

from wp_agentic.clock import Clock, default_clock
from wp_agentic.utils.logging import mask_sensitive

_LOG = logging.getLogger("wp-agentic.guards.kv")


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float


def _ttu(_key: str, entry: _Entry, _now: float) -> float:
    return entry.expires_at


class SharedStore:
    """Atomic, key-scoped operations over Redis or an in-process fallback."""

    def __init__(
        self,
        redis_client: Any | None = None,
        *,
        redis_url: str | None = None,
        clock: Clock = default_clock,
        counter_maxsize: int = 10_000,
        record_maxsize: int = 10_000,
    ) -> None:
        self._redis = redis_client
        self._redis_url = redis_url
        self._clock = clock
        self._counters: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=counter_maxsize, ttu=_ttu, timer=clock
        )
        self._records: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=record_maxsize, ttu=_ttu, timer=clock
        )

    @property
    def is_shared(self) -> bool:
        return self._redis is not None

    # ------------------------------------------------------------------ #
    # lifecycle                                                          #
    # ------------------------------------------------------------------ #
    async def init(self) -> None:
        """Connect to Redis if a URL was configured; fall back on failure."""
        if self._redis is not None:
            return
        if not self._redis_url:
            _LOG.info("No REDIS_URL configured, using in-process store")
            return
        client = redis.from_url(self._redis_url, decode_responses=True)
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            _LOG.warning(
                "Redis connection to %s failed: %s, using in-process store",
                mask_sensitive(self._redis_url, 12),
                exc,
            )
            await client.aclose()
            return
        self._redis = client
        _LOG.info("Shared store connected to Redis")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._counters.clear()
        self._records.clear()

    # ------------------------------------------------------------------ #
    # operations                                                         #
    # ------------------------------------------------------------------ #
    async def incr_window(self, key: str, window_ms: int) -> tuple[int, int]:
        """Increment the counter for *key*, returning ``(count, ttl_ms)``.

        The first increment starts a window of *window_ms*; if the counter
        exists without a TTL (creation race) one is set.
        """
        if self._redis is not None:
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.incr(key)
                    pipe.pttl(key)
                    count, pttl = await pipe.execute()
                pttl = int(pttl)
                if pttl < 0:
                    await self._redis.pexpire(key, window_ms)
                    pttl = window_ms
                return int(count), pttl
            except (RedisError, OSError) as exc:
                _LOG.warning("Redis incr error: %s", exc)

        now = self._clock()
        entry = self._counters.get(key)
        if entry is None:
            self._counters[key] = _Entry(1, now + window_ms / 1000)
            return 1, window_ms
        entry.value += 1
        return entry.value, max(0, int((entry.expires_at - now) * 1000))

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store *value* unless *key* exists; return True if this call wrote it."""
        if self._redis is not None:
            try:
                return bool(await self._redis.set(key, value, ex=ttl_seconds, nx=True))
            except (RedisError, OSError) as exc:
                _LOG.warning("Redis set error: %s", exc)

        if key in self._records:
            return False
        self._records[key] = _Entry(value, self._clock() + ttl_seconds)
        return True

    async def get(self, key: str) -> str | None:
        if self._redis is not None:
            try:
                return await self._redis.get(key)
            except (RedisError, OSError) as exc:
                _LOG.warning("Redis get error: %s", exc)

        entry = self._records.get(key)
        return None if entry is None else entry.value

    async def delete(self, key: str) -> None:
        if self._redis is not None:
            try:
                await self._redis.delete(key)
                return
            except (RedisError, OSError) as exc:
                _LOG.warning("Redis delete error: %s", exc)
        self._records.pop(key, None)
