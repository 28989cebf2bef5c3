"""Tool listing and invocation through the active connection."""

import pytest

SITE = "https://example.com"
HEADERS = {"X-Account-Id": "acct-1"}


@pytest.fixture
def connect(app_context):
    def _connect(*, write_mode: bool = False, token: str = "jwt-token", refresh_token=None):
        return app_context.connections.upsert(
            "acct-1", SITE, token, write_mode, refresh_token=refresh_token
        )

    return _connect


async def _call(client, name: str, arguments=None, headers=None):
    return await client.post(
        "/tools/call", json={"name": name, "arguments": arguments}, headers=headers or HEADERS
    )


def _assert_token_cookies_cleared(resp) -> None:
    cleared = {
        header.split("=", 1)[0]
        for header in resp.headers.get_list("set-cookie")
        if "Max-Age=0" in header
    }
    assert {"wp_jwt", "wp_refresh"} <= cleared


@pytest.mark.anyio
async def test_list_requires_connection(client) -> None:
    resp = await client.post("/tools/list", headers=HEADERS)

    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.anyio
async def test_read_only_catalog_hides_write_tools(client, connect, app_context) -> None:
    connect(write_mode=False)

    resp = await client.post("/tools/list", headers=HEADERS)

    data = resp.json()
    assert data["siteUrl"] == SITE
    assert data["writeMode"] is False
    assert [t["name"] for t in data["tools"]] == ["list_posts", "get_site_settings"]
    assert data["categories"] == {"posts": ["list_posts"], "settings": ["get_site_settings"]}
    assert data["tools"][0]["validated"] is True
    assert app_context.connections.get("acct-1", SITE).last_used_at is not None


@pytest.mark.anyio
async def test_write_mode_catalog_and_cache(client, connect, remote_site, app_context) -> None:
    connect(write_mode=True)

    first = (await client.post("/tools/list", headers=HEADERS)).json()
    app_context.connections.set_write_mode("acct-1", False)
    second = (await client.post("/tools/list", headers=HEADERS)).json()

    assert [t["name"] for t in first["tools"]] == [
        "list_posts",
        "create_post",
        "delete_post",
        "flush_cache",
        "get_site_settings",
    ]
    assert {t["name"]: t["write"] for t in first["tools"]}["flush_cache"] is True
    assert [t["name"] for t in second["tools"]] == ["list_posts", "get_site_settings"]
    assert remote_site.methods.count("tools/list/all") == 1


@pytest.mark.anyio
async def test_call_read_tool_normalises_arguments(client, connect, app_context) -> None:
    connect(write_mode=False)

    resp = await _call(client, "list_posts", {"per_page": 5, "unexpected": True})

    assert resp.status_code == 200
    assert resp.json()["arguments"] == {"per_page": 5}
    assert app_context.connections.get("acct-1", SITE).last_used_at is not None


@pytest.mark.anyio
async def test_call_with_warm_catalog_still_initializes(client, connect, remote_site) -> None:
    connect(write_mode=False)
    await client.post("/tools/list", headers=HEADERS)
    seen = len(remote_site.rpc_calls)

    resp = await _call(client, "list_posts", {"per_page": 1})

    assert resp.status_code == 200
    assert remote_site.methods[seen:] == ["initialize", "tools/call"]


@pytest.mark.anyio
async def test_write_tool_refused_without_write_mode(client, connect, remote_site) -> None:
    connect(write_mode=False)

    for name in ("create_post", "flush_cache", "publish_everything"):
        resp = await _call(client, name, {"title": "x"})
        assert resp.status_code == 403, name
        assert resp.json()["error"] == "write_mode_disabled"
    assert "tools/call" not in remote_site.methods


@pytest.mark.anyio
async def test_write_tool_arguments_are_validated(client, connect, remote_site) -> None:
    connect(write_mode=True)

    bad = await _call(client, "create_post", {"status": "draft"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "invalid_request"
    assert bad.json()["details"][0]["loc"] == ["title"]

    strict = await _call(client, "create_post", {"title": "Hi", "author": 3})
    assert strict.status_code == 400
    assert "tools/call" not in remote_site.methods

    ok = await _call(client, "create_post", {"title": "Hi", "status": "draft"})
    assert ok.status_code == 200
    assert ok.json()["arguments"] == {"title": "Hi", "status": "draft"}


@pytest.mark.anyio
async def test_unknown_read_tool_is_forwarded_unvalidated(client, connect, remote_site) -> None:
    connect(write_mode=False)

    resp = await _call(client, "get_stats", {"range": "7d"})

    assert resp.status_code == 200
    assert resp.json()["arguments"] == {"range": "7d"}
    assert remote_site.rpc_calls[-1]["params"] == {"name": "get_stats", "arguments": {"range": "7d"}}


@pytest.mark.anyio
async def test_expired_token_is_refreshed_once(client, connect, remote_site, app_context) -> None:
    connect(write_mode=False, token="jwt-expired", refresh_token="refresh-1")

    resp = await client.post("/tools/list", headers=HEADERS)

    assert resp.status_code == 200
    assert resp.cookies["wp_jwt"] == "jwt-rotated"
    assert resp.cookies["wp_refresh"] == "refresh-2"
    assert len(remote_site.token_requests) == 1
    assert app_context.connections.get("acct-1", SITE).access_token == "jwt-rotated"


@pytest.mark.anyio
async def test_unrefreshable_token_requires_reconnect(client, connect) -> None:
    connect(write_mode=False, token="jwt-expired")
    client.cookies.set("wp_jwt", "jwt-expired")

    resp = await _call(client, "list_posts")

    assert resp.status_code == 401
    assert resp.json()["error"] == "reconnect_required"
    _assert_token_cookies_cleared(resp)


@pytest.mark.anyio
async def test_rejected_refresh_on_list_clears_token_cookies(client, connect, remote_site) -> None:
    connect(write_mode=False, token="jwt-expired", refresh_token="revoked")
    client.cookies.set("wp_jwt", "jwt-expired")
    client.cookies.set("wp_refresh", "revoked")

    resp = await client.post("/tools/list", headers=HEADERS)

    assert resp.status_code == 401
    assert resp.json()["error"] == "reconnect_required"
    assert len(remote_site.token_requests) == 1
    _assert_token_cookies_cleared(resp)


@pytest.mark.anyio
async def test_reconnect_response_is_not_replayed(client, connect) -> None:
    connect(write_mode=False, token="jwt-expired")
    headers = {**HEADERS, "Idempotency-Key": "call-2"}

    failed = await _call(client, "list_posts", headers=headers)
    connect(write_mode=False, token="jwt-token")
    retried = await _call(client, "list_posts", headers=headers)

    assert failed.status_code == 401
    assert retried.status_code == 200
    assert "X-Idempotent-Replay" not in retried.headers


@pytest.mark.anyio
async def test_call_is_idempotent_per_key(client, connect, remote_site) -> None:
    connect(write_mode=True)
    headers = {**HEADERS, "Idempotency-Key": "call-1"}

    first = await _call(client, "delete_post", {"id": 9}, headers=headers)
    second = await _call(client, "delete_post", {"id": 9}, headers=headers)

    assert first.json() == second.json()
    assert second.headers["X-Idempotent-Replay"] == "true"
    assert remote_site.methods.count("tools/call") == 1
