"""Exception types raised by the linking core.

Only lightweight, **data-carrying** exceptions live here so that the HTTP
layer can turn them into responses without guessing from message text.
Every error exposes a machine-readable ``code`` and an HTTP ``status``.
"""

from __future__ import annotations

from typing import Any, ClassVar, Literal


class WPAgenticError(RuntimeError):
    """Base class for every expected failure of the core."""

    code: ClassVar[str] = "error"
    status: ClassVar[int] = 400
    default_message: ClassVar[str] = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self)}


class ConfigurationError(WPAgenticError):
    """Missing or weak configuration; never degrade to an insecure mode."""

    code = "configuration"
    status = 500
    default_message = "Service is not configured."


class DecryptionError(WPAgenticError):
    code = "decryption_failed"
    status = 500
    default_message = "Stored credential could not be decrypted."


class MCPError(WPAgenticError):
    """Transport or JSON-RPC failure talking to a remote WordPress site."""

    code = "mcp_error"
    status = 502
    default_message = "MCP request failed."

    def __init__(
        self,
        message: str | None = None,
        *,
        kind: Literal["transport", "protocol"] = "transport",
        status_code: int | None = None,
        rpc_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.rpc_code = rpc_code
        self.body = body

    @property
    def is_unauthorized(self) -> bool:
        """True for 401-shaped failures that a credential refresh may fix."""
        if self.status_code == 401:
            return True
        text = str(self).lower()
        return " 401" in text or "unauthorized" in text

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["kind"] = self.kind
        if self.status_code is not None:
            payload["status"] = self.status_code
        return payload


class PairingError(WPAgenticError):
    """Base for user-actionable device-link state errors."""


class DeviceLinkNotFoundError(PairingError):
    code = "not_found"
    default_message = "Pairing code not found."


class DeviceLinkExpiredError(PairingError):
    code = "expired"
    default_message = "Pairing code expired. Start again."


class DeviceLinkAlreadyUsedError(PairingError):
    code = "already_used"
    default_message = "Pairing code was already used."


class PlanLimitError(WPAgenticError):
    code = "plan_limit"
    status = 402
    default_message = "Free plan supports only 1 connected site. Upgrade to add more."


class RateLimitedError(WPAgenticError):
    code = "rate_limited"
    status = 429
    default_message = "Too many requests. Please slow down."

    def __init__(self, message: str | None = None, *, retry_after: int = 1) -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))


class InvalidOriginError(WPAgenticError):
    code = "invalid_origin"
    status = 403
    default_message = "Invalid origin."


class NotAuthenticatedError(WPAgenticError):
    code = "unauthorized"
    status = 401
    default_message = "Unauthorized."


class ConnectionNotFoundError(WPAgenticError):
    code = "not_found"
    status = 404
    default_message = "WordPress connection not found."


class ReconnectRequiredError(WPAgenticError):
    """The stored credentials can no longer be refreshed; link the site again."""

    code = "reconnect_required"
    status = 401
    default_message = "WordPress connection must be re-linked."

    def __init__(self, message: str | None = None, *, site_url: str | None = None) -> None:
        super().__init__(message)
        self.site_url = site_url

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.site_url:
            payload["siteUrl"] = self.site_url
        return payload


class TokenRefreshError(WPAgenticError):
    code = "refresh_failed"
    status = 502
    default_message = "Refresh succeeded but no access token returned."


class TokenEndpointUnavailableError(WPAgenticError):
    """The token endpoint timed out or could not be reached.

    The refresh credential was never judged, so callers keep it.
    """

    code = "refresh_unavailable"
    status = 502
    default_message = "WordPress token endpoint is unreachable. Try again."

    def __init__(self, message: str | None = None, *, site_url: str | None = None) -> None:
        super().__init__(message)
        self.site_url = site_url


class WriteModeDisabledError(WPAgenticError):
    code = "write_mode_disabled"
    status = 403
    default_message = "Write mode is disabled. Enable it to perform write operations."


class InvalidDeviceCodeError(DeviceLinkNotFoundError):
    """Poll with a device code that was never issued (or already purged)."""

    code = "invalid_device_code"
    default_message = "Unknown device code."


class CodeAllocationError(WPAgenticError):
    code = "code_allocation_failed"
    status = 503
    default_message = "Could not allocate a unique pairing code. Try again."


class InvalidRequestError(WPAgenticError):
    """Malformed request body; ``details`` lists the offending fields."""

    code = "invalid_request"
    default_message = "Invalid request."

    def __init__(self, message: str | None = None, *, details: list[Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.details:
            payload["details"] = self.details
        return payload
