"""Per-account site-count entitlement.

Free accounts may hold a single WordPress connection. Accounts with an
``admin``/``owner`` role or an active subscription are unlimited. Both
facts come from external collaborators behind :class:`EntitlementResolver`.
"""

from __future__ import annotations

import logging
from typing import Final, Protocol, runtime_checkable

from wp_agentic.errors import PlanLimitError

_LOG = logging.getLogger("wp-agentic.pairing.entitlements")

FREE_SITE_LIMIT: Final[int] = 1
ELEVATED_ROLES: Final[frozenset[str]] = frozenset({"admin", "owner"})


@runtime_checkable
class EntitlementResolver(Protocol):
    async def roles(self, account_id: str) -> frozenset[str]: ...

    async def has_active_subscription(self, account_id: str) -> bool: ...


class StaticEntitlements(EntitlementResolver):
    """Resolver backed by fixed account lists (``WPA_ADMIN_ACCOUNTS`` ...)."""

    def __init__(
        self,
        admin_accounts: frozenset[str] = frozenset(),
        subscribed_accounts: frozenset[str] = frozenset(),
    ) -> None:
        self.admin_accounts = admin_accounts
        self.subscribed_accounts = subscribed_accounts

    async def roles(self, account_id: str) -> frozenset[str]:
        return frozenset({"admin"}) if account_id in self.admin_accounts else frozenset()

    async def has_active_subscription(self, account_id: str) -> bool:
        return account_id in self.subscribed_accounts


async def is_elevated(
    resolver: EntitlementResolver, account_id: str, *, fail_open: bool = True
) -> bool:
    """Return True if *account_id* is exempt from the free site limit.

    A failing lookup resolves to *fail_open*.
    """
    try:
        if await resolver.roles(account_id) & ELEVATED_ROLES:
            return True
        return await resolver.has_active_subscription(account_id)
    except Exception as exc:  # broad: collaborator failures follow the fail-open policy
        _LOG.warning(
            "Entitlement lookup failed for account=%s (%s); treating as %s",
            account_id,
            exc,
            "unlimited" if fail_open else "limited",
        )
        return fail_open


async def check_site_limit(
    resolver: EntitlementResolver,
    account_id: str,
    *,
    existing_count: int,
    is_new_site: bool,
    fail_open: bool = True,
) -> None:
    """Raise :class:`PlanLimitError` if linking another site is not allowed."""
    if not is_new_site or existing_count < FREE_SITE_LIMIT:
        return
    if await is_elevated(resolver, account_id, fail_open=fail_open):
        return
    raise PlanLimitError()
