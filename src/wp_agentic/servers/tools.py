"""Tool endpoints for the active WordPress connection.

``POST {base}/list`` returns the write-gated catalog; ``POST {base}/call``
invokes one tool. Both go through
:class:`~wp_agentic.remote_mcp.session.RefreshingMCPSession`, so a 401 from
the site triggers one credential refresh and one retry. When the site
rejects the refresh credential, the token cookies are cleared.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from wp_agentic.connections.models import SiteCredentials
from wp_agentic.errors import (
    InvalidRequestError,
    ReconnectRequiredError,
    WriteModeDisabledError,
)
from wp_agentic.remote_mcp.session import RefreshingMCPSession
from wp_agentic.remote_mcp.tools import (
    RemoteTool,
    build_tool_catalog,
    categorize_tools,
    is_write_tool,
    visible_tools,
)
from wp_agentic.servers.context import AppContext
from wp_agentic.servers.cookies import clear_token_cookies, set_token_cookies
from wp_agentic.servers.dependencies import (
    correlation_id,
    error_response,
    get_context,
    guard_request,
    parse_body,
    require_account_id,
    resolve_connection,
)

_LOG = logging.getLogger("wp-agentic.servers.tools")


class CallBody(BaseModel):
    name: str = Field(min_length=1)
    arguments: Any = None


def _session(request: Request, ctx: AppContext, creds: SiteCredentials) -> RefreshingMCPSession:
    configured = ctx.config.public_app_url
    return RefreshingMCPSession(
        creds,
        ctx.refresher,
        origin=configured or f"{request.url.scheme}://{request.url.netloc}",
        timeout=ctx.config.http_timeout,
        transport=ctx.remote_transport,
    )


async def _catalog(
    ctx: AppContext, session: RefreshingMCPSession, creds: SiteCredentials
) -> dict[str, RemoteTool]:
    key = (creds.account_id, creds.site_url)
    catalog = ctx.catalog_cache.get(key)
    if catalog is None:
        catalog = build_tool_catalog(await session.list_tools(), write_mode=True)
        ctx.catalog_cache[key] = catalog
    return catalog


def _finish(ctx: AppContext, session: RefreshingMCPSession, response: Response) -> Response:
    if session.last_refresh is not None:
        set_token_cookies(
            response,
            access_token=session.last_refresh.access_token,
            expires_in=session.last_refresh.expires_in,
            refresh_token=session.last_refresh.refresh_token,
            secure=ctx.config.secure_cookies,
        )
    return response


def _reconnect_response(request: Request, exc: ReconnectRequiredError) -> Response:
    """Error response that also drops the cached ``wp_jwt`` and ``wp_refresh``."""
    _LOG.info(
        "Reconnect required site=%s correlation_id=%s", exc.site_url, correlation_id(request)
    )
    response = error_response(exc)
    clear_token_cookies(response)
    return response


def register_tool_routes(app: Starlette, *, base_path: str = "/tools") -> None:
    """Attach the tool endpoints to *app* under *base_path*."""

    # ----- POST /tools/list ----------------------------------------------- #
    async def _list(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)
        creds = await resolve_connection(request, account_id)
        session = _session(request, ctx, creds)

        try:
            catalog = await _catalog(ctx, session, creds)
        except ReconnectRequiredError as exc:
            return _reconnect_response(request, exc)

        tools = visible_tools(catalog, write_mode=creds.write_mode)
        await run_in_threadpool(ctx.connections.touch, account_id, creds.site_url)
        payload = {
            "siteUrl": creds.site_url,
            "writeMode": creds.write_mode,
            "tools": [tool.to_payload() for tool in tools.values()],
            "categories": {
                name: [tool.name for tool in members]
                for name, members in categorize_tools(tools.values()).items()
            },
        }
        return _finish(ctx, session, JSONResponse(payload))

    # ----- POST /tools/call ----------------------------------------------- #
    async def _call(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)

        async def _handler() -> Response:
            body = await parse_body(request, CallBody)
            creds = await resolve_connection(request, account_id)
            session = _session(request, ctx, creds)

            tool = (await _catalog(ctx, session, creds)).get(body.name)
            write = tool.write if tool is not None else is_write_tool(body.name)
            if write and not creds.write_mode:
                raise WriteModeDisabledError()

            arguments = body.arguments
            if tool is not None:
                try:
                    arguments = tool.validate_args(arguments)
                except ValidationError as exc:
                    raise InvalidRequestError(
                        f"Invalid arguments for tool {body.name}.",
                        details=[
                            {"loc": list(err["loc"]), "msg": err["msg"]}
                            for err in exc.errors(include_url=False)
                        ],
                    ) from None

            result = await session.call_tool(body.name, arguments)
            await run_in_threadpool(ctx.connections.touch, account_id, creds.site_url)
            _LOG.info(
                "Tool %s called site=%s write=%s correlation_id=%s",
                body.name,
                creds.site_url,
                write,
                correlation_id(request),
            )
            return _finish(ctx, session, JSONResponse(result))

        try:
            return await ctx.idempotency.run(request, f"tools/call:{account_id}", _handler)
        except ReconnectRequiredError as exc:
            return _reconnect_response(request, exc)

    app.add_route(f"{base_path}/list", _list, methods=["POST"])
    app.add_route(f"{base_path}/call", _call, methods=["POST"])
