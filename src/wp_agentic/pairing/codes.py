"""Pairing code generation.

* ``user_code``: 8 symbols from a 32-symbol alphabet without look-alikes
  (no ``0/O``, ``1/I``), about 40 bits of entropy, typed by a human.
* ``device_code``: 256 random bits, URL-safe, only ever handled by
  machines.

This module performs **no logging** of generated codes.
"""

from __future__ import annotations

import secrets
from hashlib import sha256
from typing import Final

USER_CODE_ALPHABET: Final[str] = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
USER_CODE_LENGTH: Final[int] = 8
_DEVICE_CODE_BYTES: Final[int] = 32


def generate_user_code(length: int = USER_CODE_LENGTH) -> str:
    return "".join(secrets.choice(USER_CODE_ALPHABET) for _ in range(length))


def generate_device_code() -> str:
    return secrets.token_urlsafe(_DEVICE_CODE_BYTES)


def normalize_user_code(raw: str) -> str:
    """Upper-case and drop the separators people tend to type."""
    return "".join(ch for ch in (raw or "").strip().upper() if ch not in "- ")


def is_well_formed_user_code(code: str) -> bool:
    return len(code) == USER_CODE_LENGTH and all(ch in USER_CODE_ALPHABET for ch in code)


def hash_device_code(device_code: str) -> str:
    """Stable storage key for a device code; the raw code is never persisted."""
    return sha256(device_code.encode("utf-8")).hexdigest()
