"""Typed, immutable records for the device-pairing flow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from wp_agentic.clock import Clock, default_clock

LinkStatus = Literal["pending", "approved", "consumed"]
PollStatus = Literal["pending", "approved", "expired", "consumed", "approved_requires_login"]

DEFAULT_TTL_SECONDS = 600
MIN_TTL_SECONDS = 60
MAX_TTL_SECONDS = 1800
POLL_INTERVAL_SECONDS = 5


@dataclass(frozen=True, slots=True)
class DeviceLink:
    """A short-lived pairing request.

    Only a hash of the device code is persisted; the raw value is handed to
    the browser once, at start time. ``expired`` is never stored: it is
    derived from ``expires_at`` on every read.
    """

    device_code_hash: str
    user_code: str
    status: LinkStatus
    created_at: float
    expires_at: float
    site_url: str | None = None
    jwt_encrypted: str | None = None
    write_mode: bool = False
    plugin_version: str | None = None
    approved_at: float | None = None
    consumed_at: float | None = None
    consumed_by: str | None = None

    def is_expired(self, *, clock: Clock = default_clock) -> bool:
        return clock() >= self.expires_at

    def effective_status(self, *, clock: Clock = default_clock) -> str:
        return "expired" if self.is_expired(clock=clock) else self.status


@dataclass(frozen=True, slots=True)
class StartResult:
    device_code: str
    user_code: str
    expires_in: int
    interval: int = POLL_INTERVAL_SECONDS

    def to_payload(self) -> dict[str, object]:
        return {
            "device_code": self.device_code,
            "user_code": self.user_code,
            "expires_in": self.expires_in,
            "interval": self.interval,
        }


@dataclass(frozen=True, slots=True)
class PollResult:
    status: PollStatus
    site_url: str | None = None
    write_mode: bool | None = None
    # Only set on the poll that performed the consumption.
    access_token: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"status": self.status}
        if self.site_url is not None:
            payload["siteUrl"] = self.site_url
        if self.write_mode is not None:
            payload["writeMode"] = self.write_mode
        return payload
