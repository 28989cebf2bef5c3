"""Starlette application wiring for the linking service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from wp_agentic import __version__
from wp_agentic.config import AppConfig
from wp_agentic.errors import WPAgenticError
from wp_agentic.servers.connections import register_connection_routes
from wp_agentic.servers.context import AppContext, build_context
from wp_agentic.servers.correlation import CorrelationIdMiddleware
from wp_agentic.servers.dependencies import handle_app_error, handle_unexpected_error
from wp_agentic.servers.device import register_device_routes
from wp_agentic.servers.tools import register_tool_routes

logger = logging.getLogger("wp-agentic.servers.main")


async def health_check(request: Request) -> JSONResponse:
    store = request.app.state.context.shared_store
    return JSONResponse(
        {"status": "ok", "version": __version__, "sharedStore": store.is_shared}
    )


def create_app(
    config: AppConfig | None = None, *, context: AppContext | None = None
) -> Starlette:
    """Build the ASGI app; *context* replaces the env-derived services."""
    ctx = context or build_context(config or AppConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info("wp-agentic link service starting (storage=%s)", ctx.config.storage_dir)
        await ctx.shared_store.init()
        try:
            yield
        finally:
            await ctx.shared_store.close()
            logger.info("wp-agentic link service shutdown complete")

    app = Starlette(
        routes=[Route("/health", health_check, methods=["GET"])],
        middleware=[Middleware(CorrelationIdMiddleware)],
        exception_handlers={
            WPAgenticError: handle_app_error,
            Exception: handle_unexpected_error,
        },
        lifespan=lifespan,
    )
    app.state.context = ctx
    register_device_routes(app)
    register_connection_routes(app)
    register_tool_routes(app)
    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import os

    import uvicorn

    from wp_agentic.utils.logging import setup_logging

    setup_logging()
    uvicorn.run(
        create_app(),
        host=os.getenv("WPA_HOST", "127.0.0.1"),
        port=int(os.getenv("WPA_PORT", "8000")),
        log_level=os.getenv("WPA_LOG_LEVEL", "info").lower(),
    )
