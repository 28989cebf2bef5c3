"""WordPress plugin version compatibility."""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import zip_longest
from typing import Final

MIN_PLUGIN_VERSION: Final[str] = "0.1.0"

_LEADING_INT = re.compile(r"\s*(\d+)")


def _parts(version: str) -> list[int]:
    parts = []
    for chunk in version.split("."):
        match = _LEADING_INT.match(chunk)
        parts.append(int(match.group(1)) if match else 0)
    return parts


def version_gte(a: str, b: str) -> bool:
    """Dotted numeric ``a >= b``; missing components count as 0."""
    for na, nb in zip_longest(_parts(a), _parts(b), fillvalue=0):
        if na != nb:
            return na > nb
    return True


@dataclass(frozen=True, slots=True)
class Compatibility:
    ok: bool
    plugin_version: str
    min_required: str = MIN_PLUGIN_VERSION
    reason: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "pluginVersion": self.plugin_version,
            "minRequired": self.min_required,
            "reason": self.reason,
        }


def check_compatibility(plugin_version: str | None) -> Compatibility:
    version = plugin_version or "0.0.0"
    ok = version_gte(version, MIN_PLUGIN_VERSION)
    return Compatibility(
        ok=ok,
        plugin_version=version,
        reason=None if ok else f"Plugin {version} < required {MIN_PLUGIN_VERSION}",
    )
