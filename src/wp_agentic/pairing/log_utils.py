"""Pairing-aware logger adapter.

Only *non-sensitive* context is ever attached to records:

- ``link_id``       : first 6 characters of the device-code hash
- ``account_id``    : the linking application's account identifier
- ``site_url``      : the WordPress site being linked
- ``correlation_id``: request correlation id, when known

User codes, device codes and credentials never reach the adapter.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any


class _PairingLoggerAdapter(logging.LoggerAdapter):
    extra_keys = ("link_id", "account_id", "site_url", "correlation_id")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        extra_clean: MutableMapping[str, Any] = {}
        for key in self.extra_keys:
            if not extra or extra.get(key) is None:
                continue
            value = extra[key]
            extra_clean[key] = str(value)[:6] if key == "link_id" else value
        super().__init__(logger, extra_clean)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        if kwargs.get("extra") is None:
            kwargs["extra"] = {}
        for key, value in self.extra.items():
            kwargs["extra"].setdefault(key, value)
        context = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return (f"{msg} [{context}]" if context else msg), kwargs


def get_pairing_logger(
    *,
    base_logger_name: str = "wp-agentic.pairing",
    link_id: str | None = None,
    account_id: str | None = None,
    site_url: str | None = None,
    correlation_id: str | None = None,
) -> logging.LoggerAdapter:
    return _PairingLoggerAdapter(
        logging.getLogger(base_logger_name),
        {
            "link_id": link_id,
            "account_id": account_id,
            "site_url": site_url,
            "correlation_id": correlation_id,
        },
    )
