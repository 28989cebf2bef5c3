"""Idempotent replay of mutating requests.

A response is cached under a hash of (route, caller ``Idempotency-Key``,
canonical request body). Records are written with set-if-absent semantics:
the first writer wins and later writers are served the first response.
Replays carry ``X-Idempotent-Replay: true``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, Final

from starlette.requests import Request
from starlette.responses import Response

from wp_agentic.guards.kv import SharedStore

_LOG = logging.getLogger("wp-agentic.guards.idempotency")

IDEMPOTENCY_HEADER: Final[str] = "Idempotency-Key"
REPLAY_HEADER: Final[str] = "X-Idempotent-Replay"
DEFAULT_TTL_SECONDS: Final[int] = 60 * 60 * 24

_KEY_PREFIX = "idem:v1:"


def _canonical_body(body: Any) -> str:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return body
    return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class IdempotencyRecord:
    status: int
    body: str
    media_type: str = "application/json"

    def to_response(self) -> Response:
        return Response(
            content=self.body,
            status_code=self.status,
            media_type=self.media_type,
            headers={REPLAY_HEADER: "true"},
        )


class IdempotencyCache:
    def __init__(self, store: SharedStore, *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def make_key(route: str, caller_key: str, body: Any) -> str:
        body_hash = hashlib.sha256(_canonical_body(body).encode("utf-8")).hexdigest()
        material = json.dumps([route, caller_key, body_hash], separators=(",", ":"))
        return _KEY_PREFIX + hashlib.sha256(material.encode("utf-8")).hexdigest()

    async def get(self, key: str) -> IdempotencyRecord | None:
        raw = await self.store.get(key)
        if not raw:
            return None
        try:
            return IdempotencyRecord(**json.loads(raw))
        except (ValueError, TypeError):
            _LOG.warning("Discarding unreadable idempotency record")
            return None

    async def set(
        self, key: str, record: IdempotencyRecord, ttl_seconds: int | None = None
    ) -> bool:
        """Persist *record* unless one exists; True if this call stored it."""
        return await self.store.set_if_absent(
            key, json.dumps(asdict(record)), ttl_seconds or self.ttl_seconds
        )

    async def run(
        self,
        request: Request,
        route: str,
        handler: Callable[[], Awaitable[Response]],
    ) -> Response:
        """Execute *handler* at most once per (route, key, body).

        Requests without an ``Idempotency-Key`` header pass straight through.
        Server errors (5xx) are not cached so the caller may retry them.
        """
        caller_key = request.headers.get(IDEMPOTENCY_HEADER)
        if not caller_key:
            return await handler()

        key = self.make_key(route, caller_key, await request.body())
        cached = await self.get(key)
        if cached is not None:
            _LOG.info("Idempotent replay route=%s", route)
            return cached.to_response()

        response = await handler()
        if response.status_code >= 500:
            return response

        record = IdempotencyRecord(
            status=response.status_code,
            body=bytes(response.body).decode("utf-8"),
            media_type=response.media_type or "application/json",
        )
        if await self.set(key, record):
            return response

        winner = await self.get(key)
        if winner is not None:
            _LOG.info("Concurrent idempotent request lost the race route=%s", route)
            return winner.to_response()
        return response
