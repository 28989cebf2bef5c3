"""PairingCoordinator: device-code linking of WordPress sites.

Handlers in :mod:`wp_agentic.servers.device` call the three façade methods
below; all blocking store work runs in worker threads.

State machine::

    pending --approve--> approved --consume--> consumed
       \\__________________\\_______________________ expired (derived from expires_at)

Consumption persists the connection *inside* the link lock and only then
marks the link consumed, so a poller that sees ``approved`` is guaranteed the
connection row exists.
"""

from __future__ import annotations

import functools
import logging
import math
from typing import Final

import anyio.to_thread

from wp_agentic.clock import Clock, default_clock
from wp_agentic.connections.models import normalize_site_url
from wp_agentic.connections.store import ConnectionStore
from wp_agentic.errors import (
    CodeAllocationError,
    DeviceLinkExpiredError,
    DeviceLinkNotFoundError,
    InvalidDeviceCodeError,
)
from wp_agentic.pairing.codes import (
    generate_device_code,
    generate_user_code,
    hash_device_code,
    is_well_formed_user_code,
    normalize_user_code,
)
from wp_agentic.pairing.entitlements import EntitlementResolver, check_site_limit
from wp_agentic.pairing.log_utils import get_pairing_logger
from wp_agentic.pairing.models import (
    DEFAULT_TTL_SECONDS,
    MAX_TTL_SECONDS,
    MIN_TTL_SECONDS,
    DeviceLink,
    PollResult,
    StartResult,
)
from wp_agentic.pairing.store import DeviceLinkStore, DuplicateCodeError
from wp_agentic.security.vault import CredentialVault

_LOG = logging.getLogger("wp-agentic.pairing.service")

CLEANUP_INTERVAL_SECONDS: Final[float] = 60.0
MAX_CODE_ATTEMPTS: Final[int] = 5


def resolve_ttl(ttl: object) -> int:
    """Accept a numeric TTL within bounds, otherwise the default."""
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        return DEFAULT_TTL_SECONDS
    if not math.isfinite(ttl) or not MIN_TTL_SECONDS <= ttl <= MAX_TTL_SECONDS:
        return DEFAULT_TTL_SECONDS
    return int(math.floor(ttl))


class PairingCoordinator:
    def __init__(
        self,
        store: DeviceLinkStore,
        connections: ConnectionStore,
        vault: CredentialVault,
        entitlements: EntitlementResolver,
        *,
        clock: Clock = default_clock,
        fail_open: bool = True,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
        max_code_attempts: int = MAX_CODE_ATTEMPTS,
    ) -> None:
        self.store = store
        self.connections = connections
        self.vault = vault
        self.entitlements = entitlements
        self._clock = clock
        self._fail_open = fail_open
        self._cleanup_interval = cleanup_interval
        self._max_code_attempts = max_code_attempts
        self._last_cleanup: float | None = None

    # ------------------------------------------------------------------ #
    # Start                                                              #
    # ------------------------------------------------------------------ #
    async def start(self, ttl: object = None, *, correlation_id: str | None = None) -> StartResult:
        """Create a pending link; retries on code collisions."""
        ttl_seconds = resolve_ttl(ttl)
        for attempt in range(1, self._max_code_attempts + 1):
            device_code = generate_device_code()
            now = self._clock()
            link = DeviceLink(
                device_code_hash=hash_device_code(device_code),
                user_code=generate_user_code(),
                status="pending",
                created_at=now,
                expires_at=now + ttl_seconds,
            )
            try:
                await anyio.to_thread.run_sync(self.store.create, link)
            except DuplicateCodeError:
                _LOG.info("Pairing code collision, attempt %d", attempt)
                continue

            get_pairing_logger(
                link_id=link.device_code_hash, correlation_id=correlation_id
            ).info("Pairing started ttl=%ss", ttl_seconds)
            return StartResult(
                device_code=device_code,
                user_code=link.user_code,
                expires_in=max(1, math.floor(link.expires_at - self._clock())),
            )
        raise CodeAllocationError()

    # ------------------------------------------------------------------ #
    # Approve (plugin side)                                              #
    # ------------------------------------------------------------------ #
    async def approve(
        self,
        user_code: str,
        *,
        site_url: str,
        token: str,
        write_mode: bool = False,
        plugin_version: str | None = None,
        correlation_id: str | None = None,
    ) -> DeviceLink:
        code = normalize_user_code(user_code)
        if not is_well_formed_user_code(code):
            raise DeviceLinkNotFoundError()
        site = normalize_site_url(site_url)
        jwt_encrypted = self.vault.encrypt(token)
        link = await anyio.to_thread.run_sync(
            functools.partial(
                self.store.approve,
                code,
                site_url=site,
                jwt_encrypted=jwt_encrypted,
                write_mode=write_mode,
                plugin_version=plugin_version,
            )
        )
        get_pairing_logger(
            link_id=link.device_code_hash, site_url=site, correlation_id=correlation_id
        ).info("Pairing approved write_mode=%s plugin=%s", write_mode, plugin_version)
        return link

    # ------------------------------------------------------------------ #
    # Poll / consume                                                     #
    # ------------------------------------------------------------------ #
    async def poll(
        self,
        device_code: str,
        *,
        account_id: str | None = None,
        correlation_id: str | None = None,
    ) -> PollResult:
        """Report the link state, consuming an approved link for *account_id*.

        Raises :class:`InvalidDeviceCodeError` for unknown codes and
        :class:`~wp_agentic.errors.PlanLimitError` when the account may not
        link another site (the link then stays ``approved``).
        """
        link = await anyio.to_thread.run_sync(self.store.get_by_device_code, device_code)
        if link is None:
            raise InvalidDeviceCodeError()

        log = get_pairing_logger(
            link_id=link.device_code_hash,
            account_id=account_id,
            site_url=link.site_url,
            correlation_id=correlation_id,
        )

        if link.is_expired(clock=self._clock):
            return PollResult(status="expired")
        if link.status == "pending":
            return PollResult(status="pending")
        if link.status == "consumed":
            return PollResult(status="consumed")
        if not account_id:
            return PollResult(status="approved_requires_login")

        site = link.site_url or ""
        exists, count = await anyio.to_thread.run_sync(self._connection_stats, account_id, site)
        await check_site_limit(
            self.entitlements,
            account_id,
            existing_count=count,
            is_new_site=not exists,
            fail_open=self._fail_open,
        )

        tokens: list[str] = []

        def persist(approved: DeviceLink) -> None:
            token = self.vault.decrypt(approved.jwt_encrypted or "")
            tokens.append(token)
            self.connections.upsert(
                account_id, approved.site_url or "", token, approved.write_mode
            )

        try:
            consumed, performed = await anyio.to_thread.run_sync(
                functools.partial(
                    self.store.consume, device_code, account_id=account_id, persist=persist
                )
            )
        except DeviceLinkExpiredError:
            return PollResult(status="expired")

        if not performed:
            # A concurrent poll got there first; report what it left behind.
            return PollResult(status=consumed.effective_status(clock=self._clock))  # type: ignore[arg-type]

        log.info("Pairing consumed")
        return PollResult(
            status="approved",
            site_url=consumed.site_url,
            write_mode=consumed.write_mode,
            access_token=tokens[0] if tokens else None,
        )

    def _connection_stats(self, account_id: str, site_url: str) -> tuple[bool, int]:
        return (
            self.connections.exists(account_id, site_url),
            self.connections.count(account_id),
        )

    # ------------------------------------------------------------------ #
    # Cleanup                                                            #
    # ------------------------------------------------------------------ #
    def cleanup_due(self) -> bool:
        now = self._clock()
        if self._last_cleanup is not None and now - self._last_cleanup < self._cleanup_interval:
            return False
        self._last_cleanup = now
        return True

    async def cleanup(self) -> int:
        """Delete expired links; failures are logged, never raised."""
        try:
            return await anyio.to_thread.run_sync(self.store.delete_expired)
        except OSError as exc:
            _LOG.warning("Expired pairing cleanup failed: %s", exc)
            return 0
