"""Secret handling and request-origin checks."""

from __future__ import annotations

from .origin import get_client_ip, is_allowed_origin  # noqa: F401
from .vault import CredentialVault  # noqa: F401

__all__ = ["CredentialVault", "get_client_ip", "is_allowed_origin"]
