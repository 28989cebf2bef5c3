"""ConnectionStore: encrypted rows, ordering and per-row mutations."""

import json

import pytest

from wp_agentic.connections.store import ConnectionStore
from wp_agentic.errors import DecryptionError

SITE = "https://example.com"
OTHER_SITE = "https://blog.example.org"


@pytest.fixture
def store(tmp_path, vault, clock) -> ConnectionStore:
    return ConnectionStore(tmp_path, vault, clock=clock)


def _row_files(store: ConnectionStore):
    return list(store.base_dir.rglob("*.json"))


def test_credentials_are_encrypted_at_rest(store) -> None:
    store.upsert("acct-1", SITE, "secret-jwt", True, refresh_token="secret-refresh")

    [path] = _row_files(store)
    raw = path.read_text()
    assert "secret-jwt" not in raw
    assert "secret-refresh" not in raw
    assert json.loads(raw)["site_url"] == SITE

    creds = store.get("acct-1", SITE)
    assert creds.access_token == "secret-jwt"
    assert creds.refresh_token == "secret-refresh"
    assert creds.write_mode is True


def test_site_url_is_normalised(store) -> None:
    store.upsert("acct-1", " https://example.com/ ", "jwt", False)

    assert store.exists("acct-1", SITE)
    assert store.get("acct-1", SITE + "//").site_url == SITE
    assert store.count("acct-1") == 1


def test_upsert_overwrites_and_keeps_refresh_token(store, clock) -> None:
    store.upsert("acct-1", SITE, "jwt-1", False, refresh_token="refresh-1")
    clock.advance(5)
    store.upsert("acct-1", SITE, "jwt-2", True)

    creds = store.get("acct-1", SITE)
    assert creds.access_token == "jwt-2"
    assert creds.refresh_token == "refresh-1"
    assert creds.updated_at == clock.now
    assert store.count("acct-1") == 1

    store.upsert("acct-1", SITE, "jwt-3", True, refresh_token=None)
    assert store.get("acct-1", SITE).refresh_token is None


def test_list_orders_by_recent_update(store, clock) -> None:
    store.upsert("acct-1", SITE, "a", False)
    clock.advance(1)
    store.upsert("acct-1", OTHER_SITE, "b", False)

    assert [c.site_url for c in store.list("acct-1")] == [OTHER_SITE, SITE]
    assert store.get_primary("acct-1").site_url == OTHER_SITE

    clock.advance(1)
    store.upsert("acct-1", SITE, "a2", False)
    assert store.get_primary("acct-1").site_url == SITE


def test_accounts_are_isolated(store) -> None:
    store.upsert("acct-1", SITE, "jwt", False)

    assert store.get("acct-2", SITE) is None
    assert store.get_primary("acct-2") is None
    assert store.list("acct-2") == []
    assert store.count("acct-2") == 0


def test_set_write_mode_scope(store) -> None:
    store.upsert("acct-1", SITE, "jwt-a", False)
    store.upsert("acct-1", OTHER_SITE, "jwt-b", False)

    assert store.set_write_mode("acct-1", True, site_url=SITE) == 1
    assert store.get("acct-1", SITE).write_mode is True
    assert store.get("acct-1", OTHER_SITE).write_mode is False

    assert store.set_write_mode("acct-1", True) == 2
    assert store.get("acct-1", OTHER_SITE).access_token == "jwt-b"
    assert store.set_write_mode("acct-1", True, site_url="https://unknown.test") == 0


def test_write_mode_does_not_reorder_primary(store, clock) -> None:
    store.upsert("acct-1", SITE, "jwt-a", False)
    clock.advance(1)
    store.upsert("acct-1", OTHER_SITE, "jwt-b", False)
    clock.advance(1)

    store.set_write_mode("acct-1", True)
    store.set_write_mode("acct-1", False, site_url=SITE)

    assert store.get_primary("acct-1").site_url == OTHER_SITE
    assert store.get("acct-1", SITE).updated_at == clock.now - 2


def test_touch_and_delete(store, clock) -> None:
    store.upsert("acct-1", SITE, "jwt", False)
    clock.advance(30)
    store.touch("acct-1", SITE)

    creds = store.get("acct-1", SITE)
    assert creds.last_used_at == clock.now
    summary = creds.summary(active_site=SITE + "/")
    assert summary["isActive"] is True
    assert "accessToken" not in summary and "jwt" not in json.dumps(summary)

    assert store.delete("acct-1", SITE) is True
    assert store.delete("acct-1", SITE) is False
    assert store.get("acct-1", SITE) is None


def test_rows_from_another_secret_fail_to_decrypt(tmp_path, clock) -> None:
    from wp_agentic.security.vault import CredentialVault

    ConnectionStore(tmp_path, CredentialVault("first-secret-0123456789"), clock=clock).upsert(
        "acct-1", SITE, "jwt", False
    )
    other = ConnectionStore(tmp_path, CredentialVault("second-secret-0123456789"), clock=clock)

    with pytest.raises(DecryptionError):
        other.get("acct-1", SITE)
