"""Same-origin / allow-list checks and client IP resolution for handlers."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from starlette.requests import Request

_LOG = logging.getLogger("wp-agentic.security.origin")

_FORWARDED_FOR = re.compile(r"for=([^;,]+)", re.IGNORECASE)
_DEFAULT_IP = "127.0.0.1"


def is_allowed_origin(request: Request, allowlist: Iterable[str] = ()) -> bool:
    """Return True unless the request carries a foreign ``Origin`` header.

    * A missing ``Origin`` is allowed (server-to-server, e.g. the WordPress
      plugin calling ``/device/activate``).
    * Same-origin requests are allowed.
    * Origins listed in *allowlist* (case-insensitive) are allowed.
    """
    origin = request.headers.get("origin")
    if not origin:
        return True

    origin_norm = origin.strip().rstrip("/").lower()
    own = f"{request.url.scheme}://{request.url.netloc}".lower()
    if origin_norm == own:
        return True

    allowed = {item.strip().rstrip("/").lower() for item in allowlist if item.strip()}
    if origin_norm in allowed:
        return True

    _LOG.info("Rejected request from origin=%s path=%s", origin_norm, request.url.path)
    return False


def get_client_ip(request: Request) -> str:
    """Best-effort client IP, honouring the usual proxy headers."""
    headers = request.headers
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    for name in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(name)
        if value:
            return value.strip()
    forwarded = headers.get("forwarded")
    if forwarded:
        match = _FORWARDED_FOR.search(forwarded)
        if match:
            return match.group(1).strip().strip('"')
    if request.client and request.client.host:
        return request.client.host
    return _DEFAULT_IP
