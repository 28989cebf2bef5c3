import pytest


@pytest.mark.anyio
async def test_health_mints_correlation_id(client) -> None:
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["sharedStore"] is False
    assert len(resp.headers["X-Correlation-ID"]) == 32


@pytest.mark.anyio
async def test_incoming_id_is_echoed(client) -> None:
    resp = await client.get("/health", headers={"X-Correlation-ID": "req-42.abc"})

    assert resp.headers["X-Correlation-ID"] == "req-42.abc"


@pytest.mark.anyio
@pytest.mark.parametrize("bad", ["has space", "x" * 65, "semi;colon"])
async def test_unusual_ids_are_replaced(client, bad: str) -> None:
    resp = await client.get("/health", headers={"X-Correlation-ID": bad})

    assert resp.headers["X-Correlation-ID"] != bad


@pytest.mark.anyio
async def test_error_responses_carry_the_id(client) -> None:
    resp = await client.get("/connection/list", headers={"X-Correlation-ID": "trace-1"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"
    assert resp.headers["X-Correlation-ID"] == "trace-1"
