"""Refresh-and-retry-once wrapper around :class:`MCPProtocolClient`.

The protocol client knows nothing about credentials. This wrapper owns the
policy: run the call, and if it fails with a 401-shaped :class:`MCPError`,
rotate the site's credentials once and repeat the same call on a fresh
client bound to the new access token. Any other failure, or a second 401,
propagates unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from wp_agentic.connections.models import SiteCredentials
from wp_agentic.connections.refresh import RefreshResult, TokenRefreshCoordinator
from wp_agentic.errors import MCPError
from wp_agentic.remote_mcp.client import DEFAULT_TIMEOUT, MCPProtocolClient

_LOG = logging.getLogger("wp-agentic.remote_mcp.session")

T = TypeVar("T")


class RefreshingMCPSession:
    def __init__(
        self,
        credentials: SiteCredentials,
        refresher: TokenRefreshCoordinator,
        *,
        origin: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials = credentials
        self.refresher = refresher
        self.origin = origin
        self._timeout = timeout
        self._transport = transport
        self.client = self._make_client(credentials.access_token)
        self.last_refresh: RefreshResult | None = None

    def _make_client(self, token: str) -> MCPProtocolClient:
        return MCPProtocolClient(
            self.credentials.site_url, token, timeout=self._timeout, transport=self._transport
        )

    async def run(self, operation: Callable[[MCPProtocolClient], Awaitable[T]]) -> T:
        """Run *operation*, refreshing and retrying exactly once on 401."""
        try:
            return await operation(self.client)
        except MCPError as exc:
            if not exc.is_unauthorized:
                raise
            _LOG.info(
                "MCP call unauthorized for site=%s, refreshing credentials",
                self.credentials.site_url,
            )

        self.last_refresh = await self.refresher.refresh(
            self.credentials.account_id,
            self.credentials.site_url,
            refresh_token=self.credentials.refresh_token,
            origin=self.origin,
        )
        self.client = self._make_client(self.last_refresh.access_token)
        return await operation(self.client)

    async def initialize(self) -> Any:
        return await self.run(lambda c: c.initialize())

    async def list_tools(self) -> list[dict[str, Any]]:
        """``initialize`` followed by ``tools/list/all``, retried as one unit."""

        async def _list(client: MCPProtocolClient) -> list[dict[str, Any]]:
            await client.initialize()
            return await client.list_tools()

        return await self.run(_list)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """``initialize`` followed by ``tools/call``, retried as one unit."""

        async def _call(client: MCPProtocolClient) -> Any:
            await client.initialize()
            return await client.call_tool(name, arguments)

        return await self.run(_call)
