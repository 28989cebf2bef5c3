"""Request-scoped helpers shared by the route modules.

Identity is resolved from a header set by the authenticating front
(``WPA_IDENTITY_HEADER``, default ``X-Account-Id``); this service never
issues sessions itself.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, TypeVar

from pydantic import AfterValidator, BaseModel, HttpUrl, TypeAdapter, ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from wp_agentic.connections.models import SiteCredentials, normalize_site_url
from wp_agentic.errors import (
    ConnectionNotFoundError,
    InvalidOriginError,
    InvalidRequestError,
    NotAuthenticatedError,
    RateLimitedError,
    WPAgenticError,
)
from wp_agentic.security.origin import get_client_ip, is_allowed_origin
from wp_agentic.servers.context import AppContext
from wp_agentic.servers.cookies import active_site

logger = logging.getLogger("wp-agentic.servers.dependencies")

M = TypeVar("M", bound=BaseModel)

RATE_WINDOW_MS = 60_000

_HTTP_URL = TypeAdapter(HttpUrl)


def _http_url(value: str) -> str:
    _HTTP_URL.validate_python(value)
    return normalize_site_url(value)


SiteUrl = Annotated[str, AfterValidator(_http_url)]


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "-")


def get_account_id(request: Request) -> str | None:
    ctx = get_context(request)
    value = (request.headers.get(ctx.config.identity_header) or "").strip()
    return value or None


def require_account_id(request: Request) -> str:
    account_id = get_account_id(request)
    if not account_id:
        raise NotAuthenticatedError()
    return account_id


async def guard_request(
    request: Request,
    *,
    bucket: str | None = None,
    max_requests: int = 0,
    window_ms: int = RATE_WINDOW_MS,
) -> None:
    """Origin check, then the per-IP rate limit for *bucket* when given."""
    ctx = get_context(request)
    if not is_allowed_origin(request, ctx.config.allowed_origins):
        raise InvalidOriginError()
    if bucket:
        ip = get_client_ip(request)
        await ctx.rate_limiter.enforce(f"{bucket}:{ip}", window_ms, max_requests)


async def parse_body(request: Request, model: type[M]) -> M:
    """Validate the JSON body against *model*; an empty body reads as ``{}``."""
    raw = await request.body()
    try:
        data = json.loads(raw) if raw.strip() else {}
    except ValueError:
        raise InvalidRequestError("Request body must be JSON.") from None
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidRequestError(
            details=[
                {"loc": list(err["loc"]), "msg": err["msg"]}
                for err in exc.errors(include_url=False)
            ]
        ) from None


async def resolve_connection(
    request: Request, account_id: str, *, site_url: str | None = None
) -> SiteCredentials:
    """Named site, else the selected one (``wp_base``), else the most recent."""
    ctx = get_context(request)
    target = site_url or active_site(request)
    creds = None
    if target:
        creds = await run_in_threadpool(ctx.connections.get, account_id, target)
    if creds is None and not site_url:
        creds = await run_in_threadpool(ctx.connections.get_primary, account_id)
    if creds is None:
        raise ConnectionNotFoundError("WordPress not connected")
    return creds


def error_response(exc: WPAgenticError) -> JSONResponse:
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitedError) else None
    return JSONResponse(exc.to_payload(), status_code=exc.status, headers=headers)


async def handle_app_error(request: Request, exc: WPAgenticError) -> Response:
    level = logging.WARNING if exc.status >= 500 else logging.INFO
    logger.log(
        level,
        "%s %s failed: %s (%s) correlation_id=%s",
        request.method,
        request.url.path,
        exc.code,
        exc,
        correlation_id(request),
    )
    return error_response(exc)


async def handle_unexpected_error(request: Request, exc: Exception) -> Response:
    logger.error(
        "Unhandled error on %s %s correlation_id=%s",
        request.method,
        request.url.path,
        correlation_id(request),
        exc_info=exc,
    )
    return JSONResponse({"error": "internal_error", "message": "Internal server error."}, status_code=500)
