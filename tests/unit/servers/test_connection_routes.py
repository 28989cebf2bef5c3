"""Connection management endpoints."""

import httpx
import pytest

SITE = "https://example.com"
OTHER_SITE = "https://second.example.com"
HEADERS = {"X-Account-Id": "acct-1"}


async def _save(client, site: str = SITE, **extra):
    body = {"siteUrl": site, "jwtToken": "jwt-token", "writeMode": False}
    body.update(extra)
    return await client.post("/connection/save", json=body, headers=HEADERS)


@pytest.mark.anyio
async def test_endpoints_require_identity(client) -> None:
    for method, path in (
        ("GET", "/connection/list"),
        ("POST", "/connection/save"),
        ("POST", "/connection/refresh"),
        ("POST", "/connection/validate"),
    ):
        resp = await client.request(method, path, json={})
        assert resp.status_code == 401, path
        assert resp.json()["error"] == "unauthorized"


@pytest.mark.anyio
async def test_save_list_and_status(client, app_context) -> None:
    saved = await _save(client, SITE + "/", refreshToken="refresh-1")
    assert saved.status_code == 200
    assert saved.json() == {"success": True}
    assert saved.cookies["wp_jwt"] == "jwt-token"
    assert saved.cookies["wp_write_mode"] == "0"
    assert app_context.connections.get("acct-1", SITE).refresh_token == "refresh-1"

    listed = (await client.get("/connection/list", headers=HEADERS)).json()
    assert listed == {
        "connections": [
            {
                "siteUrl": SITE,
                "writeMode": False,
                "updatedAt": app_context.clock(),
                "lastUsedAt": None,
                "isActive": True,
            }
        ]
    }

    status = (await client.get("/connection/status", headers=HEADERS)).json()
    assert status == {"connected": True, "siteUrl": SITE, "writeMode": False}
    anonymous = (await client.get("/connection/status")).json()
    assert anonymous == {"connected": False, "siteUrl": None, "writeMode": False}


@pytest.mark.anyio
async def test_save_validates_body(client) -> None:
    resp = await _save(client, "ftp:/nope", jwtToken="")

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_request"
    assert {tuple(d["loc"]) for d in body["details"]} >= {("siteUrl",), ("jwtToken",)}


@pytest.mark.anyio
async def test_save_enforces_free_plan(client, app_context) -> None:
    assert (await _save(client)).status_code == 200
    assert (await _save(client)).status_code == 200

    blocked = await _save(client, OTHER_SITE)
    assert blocked.status_code == 402
    assert blocked.json()["error"] == "plan_limit"
    assert app_context.connections.count("acct-1") == 1


@pytest.mark.anyio
async def test_save_replays_idempotent_requests(client) -> None:
    headers = {**HEADERS, "Idempotency-Key": "save-1"}
    body = {"siteUrl": SITE, "jwtToken": "jwt-token"}

    first = await client.post("/connection/save", json=body, headers=headers)
    second = await client.post("/connection/save", json=body, headers=headers)

    assert first.status_code == second.status_code == 200
    assert "X-Idempotent-Replay" not in first.headers
    assert second.headers["X-Idempotent-Replay"] == "true"
    assert second.json() == first.json()


@pytest.mark.anyio
async def test_select_switches_active_site(client, app_context, clock) -> None:
    app_context.connections.upsert("acct-1", SITE, "jwt-a", False)
    clock.advance(1)
    app_context.connections.upsert("acct-1", OTHER_SITE, "jwt-b", True)

    missing = await client.post(
        "/connection/select", json={"siteUrl": "https://nowhere.test"}, headers=HEADERS
    )
    assert missing.status_code == 404

    selected = await client.post("/connection/select", json={"siteUrl": SITE}, headers=HEADERS)
    assert selected.status_code == 200
    assert selected.cookies["wp_jwt"] == "jwt-a"

    status = (await client.get("/connection/status", headers=HEADERS)).json()
    assert status["siteUrl"] == SITE
    listed = (await client.get("/connection/list", headers=HEADERS)).json()["connections"]
    assert [(c["siteUrl"], c["isActive"]) for c in listed] == [(OTHER_SITE, False), (SITE, True)]


@pytest.mark.anyio
async def test_write_mode_toggle(client, app_context) -> None:
    await _save(client)

    resp = await client.post("/connection/write-mode", json={"enabled": True}, headers=HEADERS)

    assert resp.json() == {"success": True, "updated": 1}
    assert resp.cookies["wp_write_mode"] == "1"
    creds = app_context.connections.get("acct-1", SITE)
    assert creds.write_mode is True
    assert creds.access_token == "jwt-token"

    strict = await client.post("/connection/write-mode", json={"enabled": "true"}, headers=HEADERS)
    assert strict.status_code == 400


@pytest.mark.anyio
async def test_disconnect_clears_selection(client, app_context) -> None:
    await _save(client)

    resp = await client.post("/connection/disconnect", json={}, headers=HEADERS)

    assert resp.json() == {"success": True, "removed": True, "siteUrl": SITE}
    assert "wp_base=" in resp.headers.get("set-cookie", "")
    assert app_context.connections.count("acct-1") == 0
    assert (await client.get("/connection/status", headers=HEADERS)).json()["connected"] is False

    again = await client.post("/connection/disconnect", json={}, headers=HEADERS)
    assert again.json() == {"success": True, "removed": False}


@pytest.mark.anyio
async def test_refresh_rotates_cookies_and_store(client, app_context, remote_site) -> None:
    app_context.connections.upsert("acct-1", SITE, "jwt-old", True, refresh_token="refresh-1")

    resp = await client.post("/connection/refresh", headers=HEADERS)

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "siteUrl": SITE, "expiresIn": 900}
    assert resp.cookies["wp_jwt"] == "jwt-rotated"
    assert resp.cookies["wp_refresh"] == "refresh-2"
    assert "jwt-rotated" not in resp.text
    assert remote_site.token_requests[0]["origin"] == "http://test"
    assert app_context.connections.get("acct-1", SITE).refresh_token == "refresh-2"


@pytest.mark.anyio
async def test_refresh_without_grant_requires_reconnect(client, app_context) -> None:
    app_context.connections.upsert("acct-1", SITE, "jwt-old", True)

    resp = await client.post("/connection/refresh", headers=HEADERS)

    assert resp.status_code == 401
    assert resp.json() == {
        "error": "reconnect_required",
        "message": "No refresh token stored",
        "siteUrl": SITE,
    }
    assert "wp_jwt=" in resp.headers.get("set-cookie", "")


@pytest.mark.anyio
async def test_refresh_timeout_keeps_credentials(client, app_context, monkeypatch) -> None:
    app_context.connections.upsert("acct-1", SITE, "jwt-old", True, refresh_token="refresh-1")

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    monkeypatch.setattr(app_context.refresher, "_transport", httpx.MockTransport(slow))
    client.cookies.set("wp_refresh", "refresh-1")

    resp = await client.post("/connection/refresh", headers=HEADERS)

    assert resp.status_code == 502
    assert resp.json()["error"] == "refresh_unavailable"
    assert resp.headers.get_list("set-cookie") == []
    assert app_context.connections.get("acct-1", SITE).refresh_token == "refresh-1"


@pytest.mark.anyio
async def test_refresh_persist_failure_still_returns_rotated_cookies(
    client, app_context, monkeypatch
) -> None:
    app_context.connections.upsert("acct-1", SITE, "jwt-old", True, refresh_token="refresh-1")

    def disk_full(*args, **kwargs):
        raise OSError("No space left on device")

    monkeypatch.setattr(app_context.connections, "upsert", disk_full)

    resp = await client.post("/connection/refresh", headers=HEADERS)

    assert resp.status_code == 500
    assert resp.json()["error"] == "refresh_persist_failed"
    assert resp.cookies["wp_jwt"] == "jwt-rotated"
    assert resp.cookies["wp_refresh"] == "refresh-2"


@pytest.mark.anyio
async def test_refresh_without_connection(client) -> None:
    resp = await client.post("/connection/refresh", headers=HEADERS)

    assert resp.status_code == 404
    assert resp.json()["message"] == "WordPress not connected"


@pytest.mark.anyio
async def test_validate_reports_compatibility(client) -> None:
    resp = await client.post(
        "/connection/validate", json={"wpBase": SITE, "jwt": "jwt-token"}, headers=HEADERS
    )

    data = resp.json()
    assert data["valid"] is True
    assert data["mcpResponse"]["serverInfo"]["name"] == "wordpress-mcp"
    assert data["compatibility"] == {
        "ok": True,
        "pluginVersion": "0.2.1",
        "minRequired": "0.1.0",
        "reason": None,
    }


@pytest.mark.anyio
async def test_validate_bad_credentials_is_not_an_http_error(client) -> None:
    resp = await client.post(
        "/connection/validate", json={"wpBase": SITE, "jwt": "wrong"}, headers=HEADERS
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["valid"] is False
    assert data["message"].startswith("MCP request failed: 401")
    assert data["details"] == {"endpoint": SITE + "/wp-json/wp/v2/wpmcp/streamable", "status": 401}
