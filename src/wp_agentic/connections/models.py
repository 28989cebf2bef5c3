"""Records for durable per-account WordPress connections."""

from __future__ import annotations

from dataclasses import dataclass


def normalize_site_url(url: str) -> str:
    """Trim whitespace and trailing slashes so one site maps to one row."""
    return (url or "").strip().rstrip("/")


@dataclass(frozen=True, slots=True)
class WordPressConnection:
    """On-disk shape; credentials are ciphertext only."""

    account_id: str
    site_url: str
    jwt_encrypted: str
    write_mode: bool
    created_at: float
    updated_at: float
    last_used_at: float | None = None
    refresh_encrypted: str | None = None


@dataclass(frozen=True, slots=True)
class SiteCredentials:
    """Decrypted view handed to callers."""

    account_id: str
    site_url: str
    access_token: str
    write_mode: bool
    updated_at: float
    last_used_at: float | None = None
    refresh_token: str | None = None

    def summary(self, *, active_site: str | None = None) -> dict[str, object]:
        """Display payload without credentials."""
        return {
            "siteUrl": self.site_url,
            "writeMode": self.write_mode,
            "updatedAt": self.updated_at,
            "lastUsedAt": self.last_used_at,
            "isActive": bool(active_site) and normalize_site_url(active_site or "") == self.site_url,
        }
