"""Connection management endpoints (application-facing, authenticated).

All handlers resolve the caller via the identity header and only touch that
account's rows. Credentials never appear in responses or logs.
"""

from __future__ import annotations

import functools
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from wp_agentic.connections.refresh import RefreshPersistError
from wp_agentic.errors import ConnectionNotFoundError, MCPError, ReconnectRequiredError
from wp_agentic.pairing.entitlements import check_site_limit
from wp_agentic.remote_mcp.client import MCPProtocolClient
from wp_agentic.remote_mcp.compat import check_compatibility
from wp_agentic.servers.cookies import (
    REFRESH_COOKIE,
    active_site,
    clear_site_cookies,
    clear_token_cookies,
    set_site_cookies,
    set_token_cookies,
    set_write_mode_cookie,
)
from wp_agentic.servers.dependencies import (
    SiteUrl,
    correlation_id,
    error_response,
    get_account_id,
    get_context,
    guard_request,
    parse_body,
    require_account_id,
    resolve_connection,
)

_LOG = logging.getLogger("wp-agentic.servers.connections")

VALIDATE_LIMIT = 20


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SaveBody(_Body):
    site_url: SiteUrl = Field(alias="siteUrl")
    jwt_token: str = Field(min_length=1, alias="jwtToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    write_mode: StrictBool = Field(default=False, alias="writeMode")


class SelectBody(_Body):
    site_url: SiteUrl = Field(alias="siteUrl")


class WriteModeBody(_Body):
    enabled: StrictBool
    site_url: SiteUrl | None = Field(default=None, alias="siteUrl")


class DisconnectBody(_Body):
    site_url: SiteUrl | None = Field(default=None, alias="siteUrl")


class ValidateBody(_Body):
    wp_base: SiteUrl = Field(alias="wpBase")
    jwt: str = Field(min_length=1)
    plugin_version: str | None = Field(default=None, alias="pluginVersion")


def _origin(request: Request) -> str:
    configured = get_context(request).config.public_app_url
    return configured or f"{request.url.scheme}://{request.url.netloc}"


def register_connection_routes(app: Starlette, *, base_path: str = "/connection") -> None:
    """Attach connection endpoints to *app* under *base_path*."""

    # ----- POST /connection/save ------------------------------------------ #
    async def _save(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)

        async def _handler() -> Response:
            body = await parse_body(request, SaveBody)
            exists = await run_in_threadpool(ctx.connections.exists, account_id, body.site_url)
            count = await run_in_threadpool(ctx.connections.count, account_id)
            await check_site_limit(
                ctx.entitlements,
                account_id,
                existing_count=count,
                is_new_site=not exists,
                fail_open=ctx.config.entitlement_fail_open,
            )
            upsert = functools.partial(
                ctx.connections.upsert,
                account_id,
                body.site_url,
                body.jwt_token,
                body.write_mode,
            )
            if body.refresh_token:
                upsert = functools.partial(upsert, refresh_token=body.refresh_token)
            await run_in_threadpool(upsert)

            response = JSONResponse({"success": True})
            set_site_cookies(
                response,
                site_url=body.site_url,
                access_token=body.jwt_token,
                write_mode=body.write_mode,
                secure=ctx.config.secure_cookies,
            )
            _LOG.info(
                "Saved connection site=%s correlation_id=%s", body.site_url, correlation_id(request)
            )
            return response

        return await ctx.idempotency.run(request, f"connection/save:{account_id}", _handler)

    # ----- GET /connection/list ------------------------------------------- #
    async def _list(request: Request) -> Response:
        account_id = require_account_id(request)
        ctx = get_context(request)
        rows = await run_in_threadpool(ctx.connections.list, account_id)
        selected = active_site(request)
        return JSONResponse(
            {"connections": [row.summary(active_site=selected) for row in rows]}
        )

    # ----- POST /connection/select ---------------------------------------- #
    async def _select(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)
        body = await parse_body(request, SelectBody)
        creds = await run_in_threadpool(ctx.connections.get, account_id, body.site_url)
        if creds is None:
            raise ConnectionNotFoundError()
        response = JSONResponse({"success": True})
        set_site_cookies(
            response,
            site_url=creds.site_url,
            access_token=creds.access_token,
            write_mode=creds.write_mode,
            secure=ctx.config.secure_cookies,
        )
        return response

    # ----- POST /connection/write-mode ------------------------------------ #
    async def _write_mode(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)
        body = await parse_body(request, WriteModeBody)
        updated = await run_in_threadpool(
            functools.partial(
                ctx.connections.set_write_mode,
                account_id,
                body.enabled,
                site_url=body.site_url,
            )
        )
        response = JSONResponse({"success": True, "updated": updated})
        selected = active_site(request)
        if selected and (body.site_url is None or body.site_url == selected):
            set_write_mode_cookie(response, body.enabled, secure=ctx.config.secure_cookies)
        _LOG.info(
            "Write mode %s for %d connection(s) correlation_id=%s",
            "enabled" if body.enabled else "disabled",
            updated,
            correlation_id(request),
        )
        return response

    # ----- POST /connection/disconnect ------------------------------------ #
    async def _disconnect(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)
        body = await parse_body(request, DisconnectBody)
        try:
            creds = await resolve_connection(request, account_id, site_url=body.site_url)
        except ConnectionNotFoundError:
            return JSONResponse({"success": True, "removed": False})

        removed = await run_in_threadpool(ctx.connections.delete, account_id, creds.site_url)
        response = JSONResponse({"success": True, "removed": removed, "siteUrl": creds.site_url})
        selected = active_site(request)
        if selected is None or selected == creds.site_url:
            clear_site_cookies(response)
        return response

    # ----- GET /connection/status ----------------------------------------- #
    async def _status(request: Request) -> Response:
        account_id = get_account_id(request)
        if not account_id:
            return JSONResponse({"connected": False, "siteUrl": None, "writeMode": False})
        try:
            creds = await resolve_connection(request, account_id)
        except ConnectionNotFoundError:
            return JSONResponse({"connected": False, "siteUrl": None, "writeMode": False})
        return JSONResponse(
            {"connected": True, "siteUrl": creds.site_url, "writeMode": creds.write_mode}
        )

    # ----- POST /connection/refresh --------------------------------------- #
    async def _refresh(request: Request) -> Response:
        await guard_request(request)
        account_id = require_account_id(request)
        ctx = get_context(request)
        creds = await resolve_connection(request, account_id)
        try:
            result = await ctx.refresher.refresh(
                account_id,
                creds.site_url,
                refresh_token=request.cookies.get(REFRESH_COOKIE) or creds.refresh_token,
                origin=_origin(request),
            )
        except ReconnectRequiredError as exc:
            response = error_response(exc)
            clear_token_cookies(response)
            return response
        except RefreshPersistError as exc:
            # The remote already rotated; hand the new pair to the caller so it
            # is not locked out, but report the failure.
            response = error_response(exc)
            set_token_cookies(
                response,
                access_token=exc.result.access_token,
                expires_in=exc.result.expires_in,
                refresh_token=exc.result.refresh_token,
                secure=ctx.config.secure_cookies,
            )
            return response

        response = JSONResponse({"ok": True, "siteUrl": creds.site_url, "expiresIn": result.expires_in})
        set_site_cookies(
            response,
            site_url=creds.site_url,
            access_token=None,
            write_mode=creds.write_mode,
            secure=ctx.config.secure_cookies,
        )
        set_token_cookies(
            response,
            access_token=result.access_token,
            expires_in=result.expires_in,
            refresh_token=result.refresh_token,
            secure=ctx.config.secure_cookies,
        )
        return response

    # ----- POST /connection/validate -------------------------------------- #
    async def _validate(request: Request) -> Response:
        await guard_request(request, bucket="connection:validate", max_requests=VALIDATE_LIMIT)
        require_account_id(request)
        ctx = get_context(request)
        body = await parse_body(request, ValidateBody)
        client = MCPProtocolClient(
            body.wp_base,
            body.jwt,
            timeout=ctx.config.http_timeout,
            transport=ctx.remote_transport,
        )
        try:
            result = await client.initialize()
        except MCPError as exc:
            payload: dict[str, Any] = {"valid": False, "message": str(exc)}
            if exc.status_code is not None:
                payload["details"] = {"endpoint": client.endpoint, "status": exc.status_code}
            return JSONResponse(payload)

        server_info = result.get("serverInfo") if isinstance(result, dict) else None
        version = body.plugin_version or (
            server_info.get("version") if isinstance(server_info, dict) else None
        )
        return JSONResponse(
            {
                "valid": True,
                "message": "Successfully connected to WordPress MCP",
                "mcpResponse": result,
                "compatibility": check_compatibility(version).to_payload(),
            }
        )

    app.add_route(f"{base_path}/save", _save, methods=["POST"])
    app.add_route(f"{base_path}/list", _list, methods=["GET"])
    app.add_route(f"{base_path}/select", _select, methods=["POST"])
    app.add_route(f"{base_path}/write-mode", _write_mode, methods=["POST"])
    app.add_route(f"{base_path}/disconnect", _disconnect, methods=["POST"])
    app.add_route(f"{base_path}/status", _status, methods=["GET"])
    app.add_route(f"{base_path}/refresh", _refresh, methods=["POST"])
    app.add_route(f"{base_path}/validate", _validate, methods=["POST"])
