"""Refresh-token grant against a linked WordPress site.

The remote rotates the access credential (and possibly the refresh
credential). Rotated material is written to the :class:`ConnectionStore`
*before* it is handed back, so a caller-side cache is never newer than the
store.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Final

import anyio.to_thread
import httpx

from wp_agentic.connections.models import SiteCredentials, normalize_site_url
from wp_agentic.connections.store import ConnectionStore
from wp_agentic.errors import (
    ReconnectRequiredError,
    TokenEndpointUnavailableError,
    TokenRefreshError,
    WPAgenticError,
)
from wp_agentic.utils.logging import mask_sensitive

_LOG = logging.getLogger("wp-agentic.connections.refresh")

TOKEN_ENDPOINT_PATH: Final[str] = "/wp-json/wpcursor/v1/auth/token"
DEFAULT_EXPIRES_IN: Final[int] = 3600


@dataclass(frozen=True, slots=True)
class RefreshResult:
    access_token: str
    refresh_token: str
    expires_in: int = DEFAULT_EXPIRES_IN
    token_type: str | None = None


class RefreshPersistError(WPAgenticError):
    """The remote rotated the credentials but saving them locally failed.

    ``result`` still carries the rotated pair; the old refresh token may
    already be invalid remotely.
    """

    code = "refresh_persist_failed"
    status = 500
    default_message = "Refreshed credentials could not be saved."

    def __init__(self, result: RefreshResult, message: str | None = None) -> None:
        super().__init__(message)
        self.result = result


def token_endpoint(site_url: str) -> str:
    return normalize_site_url(site_url) + TOKEN_ENDPOINT_PATH


class TokenRefreshCoordinator:
    def __init__(
        self,
        connections: ConnectionStore,
        *,
        origin: str | None = None,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.connections = connections
        self.origin = origin
        self.timeout = timeout
        self._transport = transport

    async def request_tokens(
        self, site_url: str, refresh_token: str, *, origin: str | None = None
    ) -> RefreshResult:
        """POST the refresh grant; no persistence."""
        site = normalize_site_url(site_url)
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "origin": origin or self.origin or "",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(token_endpoint(site), json=payload)
        except httpx.HTTPError as exc:
            _LOG.warning("Token refresh transport error site=%s: %s", site, exc)
            raise TokenEndpointUnavailableError(site_url=site) from exc

        if not resp.is_success:
            _LOG.warning(
                "Token refresh rejected site=%s status=%s token=%s",
                site,
                resp.status_code,
                mask_sensitive(refresh_token),
            )
            raise ReconnectRequiredError("Refresh failed", site_url=site)

        try:
            data = resp.json()
        except ValueError:
            data = {}
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise TokenRefreshError()

        try:
            expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        return RefreshResult(
            access_token=str(access_token),
            refresh_token=str(data.get("refresh_token") or refresh_token),
            expires_in=expires_in,
            token_type=data.get("token_type"),
        )

    async def refresh(
        self,
        account_id: str,
        site_url: str,
        *,
        refresh_token: str | None = None,
        origin: str | None = None,
    ) -> RefreshResult:
        """Rotate and persist the credentials of (account, site).

        *refresh_token* defaults to the stored one. Raises
        :class:`ReconnectRequiredError` when there is none or the remote
        rejects it, and :class:`TokenEndpointUnavailableError` when the
        remote could not be reached.
        """
        site = normalize_site_url(site_url)
        current: SiteCredentials | None = await anyio.to_thread.run_sync(
            self.connections.get, account_id, site
        )
        token = refresh_token or (current.refresh_token if current else None)
        if not token:
            raise ReconnectRequiredError("No refresh token stored", site_url=site)

        result = await self.request_tokens(site, token, origin=origin)

        write_mode = current.write_mode if current else False
        try:
            await anyio.to_thread.run_sync(
                functools.partial(
                    self.connections.upsert,
                    account_id,
                    site,
                    result.access_token,
                    write_mode,
                    refresh_token=result.refresh_token,
                )
            )
        except (OSError, WPAgenticError) as exc:
            _LOG.error("Persisting refreshed credentials failed site=%s: %s", site, exc)
            raise RefreshPersistError(result) from exc

        _LOG.info("Refreshed credentials account=%s site=%s", account_id, site)
        return result
