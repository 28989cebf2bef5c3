"""Abuse-control primitives: shared counter store, rate limiter, idempotency."""

from __future__ import annotations

from .idempotency import IdempotencyCache, IdempotencyRecord  # noqa: F401
from .kv import SharedStore  # noqa: F401
from .rate_limit import RateLimiter, RateLimitResult  # noqa: F401

__all__ = [
    "IdempotencyCache",
    "IdempotencyRecord",
    "RateLimitResult",
    "RateLimiter",
    "SharedStore",
]
