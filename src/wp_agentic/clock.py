"""Injectable time source.

Expiry checks, rate-limit windows and idempotency TTLs all take a
:class:`Clock` so tests can move time explicitly instead of sleeping.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable returning *seconds* since the UNIX epoch as ``float``."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    return time.time()


def now_ms(clock: Clock = default_clock) -> int:
    """Current time of *clock* in whole milliseconds."""
    return int(clock() * 1000)
