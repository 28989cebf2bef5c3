"""Shared fixtures: fake clock, isolated storage and a fake WordPress site."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from wp_agentic.config import AppConfig
from wp_agentic.security.vault import CredentialVault
from wp_agentic.servers.context import AppContext, build_context
from wp_agentic.servers.main import create_app

SECRET = "unit-test-secret-0123456789"
SITE = "https://example.com"
ACCOUNT = "acct-1"

DEFAULT_TOOLS: list[dict[str, Any]] = [
    {
        "name": "list_posts",
        "description": "List posts",
        "inputSchema": {
            "type": "object",
            "properties": {"per_page": {"type": "integer", "minimum": 1, "maximum": 100}},
        },
    },
    {
        "name": "create_post",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "minLength": 1},
                "status": {"type": "string", "enum": ["draft", "publish"]},
            },
            "required": ["title"],
            "additionalProperties": False,
        },
    },
    {
        "name": "delete_post",
        "inputSchema": {
            "type": "object",
            "properties": {"id": {"type": "integer"}},
            "required": ["id"],
        },
    },
    {"name": "flush_cache", "kind": "action"},
    {"name": "get_site_settings"},
]


def pytest_addoption(parser):
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


class FakeClock:
    """Mutable epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWordPressSite:
    """httpx.MockTransport handler speaking the plugin's MCP and token endpoints."""

    def __init__(self) -> None:
        self.tools: list[Any] = [dict(tool) for tool in DEFAULT_TOOLS]
        self.valid_tokens: set[str] = {"jwt-token"}
        # refresh token -> (new access token, rotated refresh token or None)
        self.refresh_grants: dict[str, tuple[str, str | None]] = {
            "refresh-1": ("jwt-rotated", "refresh-2")
        }
        self.requests: list[httpx.Request] = []
        self.rpc_calls: list[dict[str, Any]] = []
        self.token_requests: list[dict[str, Any]] = []

    @property
    def methods(self) -> list[str]:
        return [call["method"] for call in self.rpc_calls]

    def _rpc_result(self, rpc: dict[str, Any]) -> dict[str, Any]:
        method = rpc["method"]
        if method == "initialize":
            result: Any = {
                "protocolVersion": "2024-11-05",
                "serverInfo": {"name": "wordpress-mcp", "version": "0.2.1"},
                "capabilities": {"tools": {}},
            }
        elif method == "tools/list/all":
            result = {"tools": self.tools}
        elif method == "tools/call":
            params = rpc["params"]
            result = {
                "content": [{"type": "text", "text": f"called {params['name']}"}],
                "arguments": params["arguments"],
            }
        else:
            return {
                "jsonrpc": "2.0",
                "id": rpc["id"],
                "error": {"code": -32601, "message": "Method not found"},
            }
        return {"jsonrpc": "2.0", "id": rpc["id"], "result": result}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/wp-json/wpcursor/v1/auth/token"):
            body = json.loads(request.content)
            self.token_requests.append(body)
            grant = self.refresh_grants.get(body.get("refresh_token"))
            if grant is None:
                return httpx.Response(401, json={"error": "invalid_grant"})
            access, rotated = grant
            self.valid_tokens.add(access)
            payload: dict[str, Any] = {"access_token": access, "expires_in": 900}
            if rotated:
                payload["refresh_token"] = rotated
            return httpx.Response(200, json=payload)
        if path.endswith("/wp-json/wp/v2/wpmcp/streamable"):
            token = request.headers.get("authorization", "").removeprefix("Bearer ")
            if token not in self.valid_tokens:
                return httpx.Response(401, text="Unauthorized")
            rpc = json.loads(request.content)
            self.rpc_calls.append(rpc)
            return httpx.Response(200, json=self._rpc_result(rpc))
        return httpx.Response(404, text="not found")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def vault() -> CredentialVault:
    return CredentialVault(SECRET)


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(encryption_secret=SECRET, storage_dir=tmp_path)


@pytest.fixture
def remote_site() -> FakeWordPressSite:
    return FakeWordPressSite()


@pytest.fixture
def app_context(config: AppConfig, clock: FakeClock, remote_site: FakeWordPressSite) -> AppContext:
    return build_context(
        config, clock=clock, remote_transport=httpx.MockTransport(remote_site.handler)
    )


@pytest.fixture
def asgi_app(app_context: AppContext):
    return create_app(context=app_context)


@pytest.fixture
async def client(asgi_app):
    """Async HTTP client bound to the Starlette app."""
    transport = httpx.ASGITransport(app=asgi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
