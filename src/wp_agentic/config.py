"""Environment-driven configuration for the linking service.

All settings are read once via :meth:`AppConfig.from_env` and passed down
explicitly; nothing below this module calls ``os.getenv`` on the hot path.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

logger = logging.getLogger("wp-agentic.config")

_TRUTHY: Final[tuple[str, ...]] = ("true", "1", "yes", "y", "on")

DEFAULT_STORAGE_DIR: Final[Path] = Path.home() / ".wp-agentic" / "data"


def _truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _csv(value: str | None) -> frozenset[str]:
    return frozenset(item.strip() for item in (value or "").split(",") if item.strip())


def _encryption_secret_from_env() -> str | None:
    for name in ("WPA_ENCRYPTION_SECRET", "NEXTAUTH_SECRET", "SESSION_SECRET"):
        value = os.getenv(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class AppConfig:
    """Process-wide settings.

    ``encryption_secret`` may be ``None``; the vault refuses to operate in
    that case instead of falling back to an unkeyed mode.
    """

    encryption_secret: str | None = None
    storage_dir: Path = DEFAULT_STORAGE_DIR
    redis_url: str | None = None
    allowed_origins: frozenset[str] = field(default_factory=frozenset)
    public_app_url: str | None = None
    http_timeout: float = 20.0
    entitlement_fail_open: bool = True
    admin_accounts: frozenset[str] = field(default_factory=frozenset)
    subscribed_accounts: frozenset[str] = field(default_factory=frozenset)
    identity_header: str = "X-Account-Id"
    secure_cookies: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        timeout_raw = os.getenv("WPA_HTTP_TIMEOUT", "20")
        try:
            timeout = float(timeout_raw)
        except ValueError:
            logger.warning("Invalid WPA_HTTP_TIMEOUT=%r, using 20s", timeout_raw)
            timeout = 20.0

        storage_dir = Path(
            os.getenv("WPA_STORAGE_DIR") or DEFAULT_STORAGE_DIR
        ).expanduser()

        return cls(
            encryption_secret=_encryption_secret_from_env(),
            storage_dir=storage_dir,
            redis_url=os.getenv("REDIS_URL") or None,
            allowed_origins=frozenset(
                o.lower().rstrip("/") for o in _csv(os.getenv("ALLOWED_ORIGINS"))
            ),
            public_app_url=(os.getenv("PUBLIC_APP_URL") or "").rstrip("/") or None,
            http_timeout=timeout,
            entitlement_fail_open=_truthy(
                os.getenv("WPA_ENTITLEMENT_FAIL_OPEN"), default=True
            ),
            admin_accounts=_csv(os.getenv("WPA_ADMIN_ACCOUNTS")),
            subscribed_accounts=_csv(os.getenv("WPA_SUBSCRIBED_ACCOUNTS")),
            identity_header=os.getenv("WPA_IDENTITY_HEADER", "X-Account-Id"),
            secure_cookies=_truthy(os.getenv("WPA_SECURE_COOKIES")),
        )
