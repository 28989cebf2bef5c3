"""Device-pairing endpoints.

* ``POST {base}/start``   : browser asks for a pairing code (10/min per IP)
* ``POST {base}/activate``: WordPress plugin approves a user code (30/min)
* ``POST {base}/poll``    : browser polls until consumed (120/min)

Handlers parse and validate input, delegate to
:class:`~wp_agentic.pairing.service.PairingCoordinator` and shape the
response. Domain errors propagate to the application's error handler.
Codes and tokens are never logged.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from wp_agentic.servers.cookies import set_site_cookies
from wp_agentic.servers.dependencies import (
    SiteUrl,
    correlation_id,
    get_account_id,
    get_context,
    guard_request,
    parse_body,
)

_LOG = logging.getLogger("wp-agentic.servers.device")

START_LIMIT = 10
ACTIVATE_LIMIT = 30
POLL_LIMIT = 120


class StartBody(BaseModel):
    ttl: Any = None


class ActivateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_code: str = Field(min_length=4)
    site: SiteUrl
    token: str = Field(min_length=1)
    write: StrictBool = False
    plugin_version: str | None = Field(default=None, alias="pluginVersion")


class PollBody(BaseModel):
    device_code: str = Field(min_length=16)


def _schedule_cleanup(request: Request, response: Response) -> Response:
    pairing = get_context(request).pairing
    if pairing.cleanup_due():
        response.background = BackgroundTask(pairing.cleanup)
    return response


def register_device_routes(app: Starlette, *, base_path: str = "/device") -> None:
    """Attach the pairing endpoints to *app* under *base_path*."""

    # ----- POST /device/start --------------------------------------------- #
    async def _start(request: Request) -> Response:
        await guard_request(request, bucket="device:start", max_requests=START_LIMIT)
        body = await parse_body(request, StartBody)
        result = await get_context(request).pairing.start(
            body.ttl, correlation_id=correlation_id(request)
        )
        return _schedule_cleanup(request, JSONResponse(result.to_payload()))

    # ----- POST /device/activate ------------------------------------------ #
    async def _activate(request: Request) -> Response:
        await guard_request(request, bucket="device:activate", max_requests=ACTIVATE_LIMIT)
        body = await parse_body(request, ActivateBody)
        await get_context(request).pairing.approve(
            body.user_code,
            site_url=body.site,
            token=body.token,
            write_mode=body.write,
            plugin_version=body.plugin_version,
            correlation_id=correlation_id(request),
        )
        return JSONResponse({"ok": True})

    # ----- POST /device/poll ---------------------------------------------- #
    async def _poll(request: Request) -> Response:
        await guard_request(request, bucket="device:poll", max_requests=POLL_LIMIT)
        body = await parse_body(request, PollBody)
        ctx = get_context(request)
        result = await ctx.pairing.poll(
            body.device_code,
            account_id=get_account_id(request),
            correlation_id=correlation_id(request),
        )
        response = JSONResponse(result.to_payload())
        if result.status == "approved" and result.site_url:
            set_site_cookies(
                response,
                site_url=result.site_url,
                access_token=result.access_token,
                write_mode=bool(result.write_mode),
                secure=ctx.config.secure_cookies,
            )
            _LOG.info(
                "Device link completed site=%s correlation_id=%s",
                result.site_url,
                correlation_id(request),
            )
        return _schedule_cleanup(request, response)

    app.add_route(f"{base_path}/start", _start, methods=["POST"])
    app.add_route(f"{base_path}/activate", _activate, methods=["POST"])
    app.add_route(f"{base_path}/poll", _poll, methods=["POST"])
