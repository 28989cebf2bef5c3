"""Stateless JSON-RPC client for the WordPress MCP ``streamable`` endpoint.

Each method is one HTTPS POST carrying a fresh envelope; there is no
session to set up or tear down. Failures of any kind surface as
:class:`~wp_agentic.errors.MCPError`:

* ``kind="transport"``: non-2xx status, timeout, DNS/connection failure
* ``kind="protocol"`` : 2xx response carrying a JSON-RPC ``error``

The client never refreshes credentials; see
:class:`~wp_agentic.remote_mcp.session.RefreshingMCPSession`.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Final

import httpx
from mcp.types import ErrorData, JSONRPCRequest
from pydantic import ValidationError

from wp_agentic.connections.models import normalize_site_url
from wp_agentic.errors import MCPError
from wp_agentic.utils.logging import mask_sensitive

_LOG = logging.getLogger("wp-agentic.remote_mcp.client")

MCP_ENDPOINT_PATH: Final[str] = "/wp-json/wp/v2/wpmcp/streamable"
PROTOCOL_VERSION: Final[str] = "2024-11-05"
CLIENT_INFO: Final[dict[str, str]] = {"name": "wpAgentic", "version": "1.0.0"}
CLIENT_CAPABILITIES: Final[dict[str, Any]] = {
    "tools": {"call": {}},
    "resources": {"read": {}},
    "prompts": {"get": {}},
}
DEFAULT_TIMEOUT: Final[float] = 20.0
_BODY_SNIPPET: Final[int] = 2000


def mcp_endpoint(site_url: str) -> str:
    return normalize_site_url(site_url) + MCP_ENDPOINT_PATH


def build_envelope(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """JSON-RPC request with a fresh id; ``params`` is omitted when None."""
    request = JSONRPCRequest(
        jsonrpc="2.0", id=uuid.uuid4().hex, method=method, params=params
    )
    envelope = request.model_dump(by_alias=True)
    if params is None:
        envelope.pop("params", None)
    return envelope


class MCPProtocolClient:
    def __init__(
        self,
        site_url: str,
        token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.site_url = normalize_site_url(site_url)
        self.endpoint = mcp_endpoint(self.site_url)
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def __repr__(self) -> str:
        return f"MCPProtocolClient(site_url={self.site_url!r}, token={mask_sensitive(self._token)!r})"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "Authorization": f"Bearer {self._token}",
        }

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send one JSON-RPC call and return its ``result``."""
        envelope = build_envelope(method, params)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(self.endpoint, json=envelope, headers=self._headers())
        except httpx.TimeoutException as exc:
            _LOG.warning("MCP %s timed out site=%s", method, self.site_url)
            raise MCPError(f"MCP request timed out: {exc}", kind="transport") from exc
        except httpx.HTTPError as exc:
            _LOG.warning("MCP %s transport error site=%s: %s", method, self.site_url, exc)
            raise MCPError(f"MCP request failed: {exc}", kind="transport") from exc

        if not resp.is_success:
            body = resp.text[:_BODY_SNIPPET]
            _LOG.info("MCP %s failed site=%s status=%s", method, self.site_url, resp.status_code)
            raise MCPError(
                f"MCP request failed: {resp.status_code} {resp.reason_phrase} - {body}",
                kind="transport",
                status_code=resp.status_code,
                body=body,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise MCPError(
                "MCP response was not valid JSON",
                kind="protocol",
                status_code=resp.status_code,
                body=resp.text[:_BODY_SNIPPET],
            ) from exc

        if not isinstance(data, dict):
            raise MCPError("MCP response was not a JSON-RPC object", kind="protocol")

        error = data.get("error")
        if error:
            try:
                err = ErrorData.model_validate(error)
                message, rpc_code = err.message or "MCP error occurred", err.code
            except ValidationError:
                message = (error.get("message") if isinstance(error, dict) else None) or "MCP error occurred"
                rpc_code = None
            _LOG.info("MCP %s returned error site=%s code=%s", method, self.site_url, rpc_code)
            raise MCPError(message, kind="protocol", rpc_code=rpc_code)

        return data.get("result")

    # ---------------- methods ------------------------------------------- #
    async def initialize(self) -> Any:
        return await self.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": CLIENT_CAPABILITIES,
                "clientInfo": CLIENT_INFO,
            },
        )

    async def list_tools(self) -> list[dict[str, Any]]:
        """Ordered raw tool descriptors; a missing list reads as empty."""
        result = await self.request("tools/list/all")
        tools = result.get("tools") if isinstance(result, dict) else None
        return list(tools) if isinstance(tools, list) else []

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        return await self.request("tools/call", {"name": name, "arguments": arguments or {}})

    async def list_resources(self) -> Any:
        return await self.request("resources/list")

    async def read_resource(self, uri: str) -> Any:
        return await self.request("resources/read", {"uri": uri})

    async def list_prompts(self) -> Any:
        return await self.request("prompts/list")

    async def get_prompt(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        params: dict[str, Any] = {"name": name}
        if arguments:
            params["arguments"] = arguments
        return await self.request("prompts/get", params)
