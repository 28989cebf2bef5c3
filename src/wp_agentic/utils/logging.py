"""Logging helpers shared by every wp-agentic module."""

from __future__ import annotations

import logging
import os

_ROOT_LOGGER = "wp-agentic"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* with everything past the first *keep_chars* hidden.

    >>> mask_sensitive("AB3DE9F2", 2)
    'AB******'
    """
    if not value:
        return ""
    if len(value) <= keep_chars:
        return "*" * len(value)
    return value[:keep_chars] + "*" * (len(value) - keep_chars)


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the ``wp-agentic`` logger hierarchy once and return it."""
    logger = logging.getLogger(_ROOT_LOGGER)
    resolved = level or os.getenv("WPA_LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    logger.setLevel(resolved)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    return logger
