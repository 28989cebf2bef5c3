from __future__ import annotations

from dataclasses import dataclass, field

import httpx
from cachetools import TTLCache

from wp_agentic.clock import Clock, default_clock
from wp_agentic.config import AppConfig
from wp_agentic.connections.refresh import TokenRefreshCoordinator
from wp_agentic.connections.store import ConnectionStore
from wp_agentic.guards.idempotency import IdempotencyCache
from wp_agentic.guards.kv import SharedStore
from wp_agentic.guards.rate_limit import RateLimiter
from wp_agentic.pairing.entitlements import EntitlementResolver, StaticEntitlements
from wp_agentic.pairing.service import PairingCoordinator
from wp_agentic.pairing.store import DiskDeviceLinkStore
from wp_agentic.security.vault import CredentialVault


@dataclass(frozen=True)
class AppContext:
    """
    Process-wide services built once at startup and shared by every handler.
    Tests build their own instance with isolated storage and fake clocks.
    """

    config: AppConfig
    vault: CredentialVault
    shared_store: SharedStore
    rate_limiter: RateLimiter
    idempotency: IdempotencyCache
    connections: ConnectionStore
    pairing: PairingCoordinator
    refresher: TokenRefreshCoordinator
    entitlements: EntitlementResolver
    clock: Clock = default_clock
    # Outbound transport override for remote WordPress sites (tests only).
    remote_transport: httpx.AsyncBaseTransport | None = None
    # Ungated tool catalogs keyed by (account, site).
    catalog_cache: TTLCache = field(default_factory=lambda: TTLCache(maxsize=256, ttl=60))


def build_context(
    config: AppConfig,
    *,
    clock: Clock = default_clock,
    entitlements: EntitlementResolver | None = None,
    shared_store: SharedStore | None = None,
    remote_transport: httpx.AsyncBaseTransport | None = None,
) -> AppContext:
    vault = CredentialVault(config.encryption_secret)
    store = shared_store or SharedStore(redis_url=config.redis_url, clock=clock)
    connections = ConnectionStore(config.storage_dir, vault, clock=clock)
    resolver = entitlements or StaticEntitlements(
        config.admin_accounts, config.subscribed_accounts
    )
    pairing = PairingCoordinator(
        DiskDeviceLinkStore(config.storage_dir, clock=clock),
        connections,
        vault,
        resolver,
        clock=clock,
        fail_open=config.entitlement_fail_open,
    )
    refresher = TokenRefreshCoordinator(
        connections,
        origin=config.public_app_url,
        timeout=config.http_timeout,
        transport=remote_transport,
    )
    return AppContext(
        config=config,
        vault=vault,
        shared_store=store,
        rate_limiter=RateLimiter(store, clock=clock),
        idempotency=IdempotencyCache(store),
        connections=connections,
        pairing=pairing,
        refresher=refresher,
        entitlements=resolver,
        clock=clock,
        remote_transport=remote_transport,
    )
