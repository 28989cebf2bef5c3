"""Authenticated encryption of long-lived credentials at rest.

Ciphertexts are encoded as::

    v1:<saltB64>:<ivB64>:<ciphertextB64>:<tagB64>

* The key is derived with scrypt (N=2**14, r=8, p=1) from the configured
  server secret and a static application salt, producing 32 bytes for
  AES-256-GCM.
* Every call to :meth:`CredentialVault.encrypt` uses a fresh 96-bit nonce.
* The per-record salt is random and reserved for future key-rotation
  schemes; version ``v1`` does not feed it into the KDF.

Plaintexts, keys and the server secret are never logged.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import threading
from typing import Final

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from wp_agentic.errors import ConfigurationError, DecryptionError

_LOG = logging.getLogger("wp-agentic.security.vault")

VERSION: Final[str] = "v1"
MIN_SECRET_LENGTH: Final[int] = 16

_STATIC_SALT: Final[bytes] = b"wpAgentic.static.salt"
_KEY_LEN: Final[int] = 32
_NONCE_LEN: Final[int] = 12
_TAG_LEN: Final[int] = 16
_RESERVED_SALT_LEN: Final[int] = 16


def _b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64d(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


def derive_key(secret: str) -> bytes:
    """Derive the 256-bit AES key for *secret*.

    Raises
    ------
    ConfigurationError
        If *secret* is missing or shorter than :data:`MIN_SECRET_LENGTH`.
    """
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(
            "Encryption secret not configured. Set WPA_ENCRYPTION_SECRET "
            f"(at least {MIN_SECRET_LENGTH} characters)."
        )
    kdf = Scrypt(salt=_STATIC_SALT, length=_KEY_LEN, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class CredentialVault:
    """Encrypt/decrypt secrets with a key derived once per process.

    Key derivation is deferred until the first operation so that a missing
    secret surfaces as a :class:`ConfigurationError` at the operation
    attempted rather than at import time.
    """

    def __init__(self, secret: str | None) -> None:
        self._secret = secret
        self._key: bytes | None = None
        self._lock = threading.Lock()

    def _aead(self) -> AESGCM:
        if self._key is None:
            with self._lock:
                if self._key is None:
                    self._key = derive_key(self._secret or "")
                    _LOG.debug("Derived credential vault key")
        return AESGCM(self._key)

    def encrypt(self, plaintext: str) -> str:
        aead = self._aead()
        nonce = os.urandom(_NONCE_LEN)
        sealed = aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_LEN], sealed[-_TAG_LEN:]
        return ":".join(
            (
                VERSION,
                _b64e(os.urandom(_RESERVED_SALT_LEN)),
                _b64e(nonce),
                _b64e(ciphertext),
                _b64e(tag),
            )
        )

    def decrypt(self, encoded: str) -> str:
        parts = (encoded or "").split(":")
        if len(parts) != 5:
            raise DecryptionError("Malformed secret encoding")
        version, _salt_b64, iv_b64, ct_b64, tag_b64 = parts
        if version != VERSION:
            raise DecryptionError("Unsupported secret encoding")

        aead = self._aead()
        try:
            nonce = _b64d(iv_b64)
            ciphertext = _b64d(ct_b64)
            tag = _b64d(tag_b64)
        except (binascii.Error, ValueError):
            raise DecryptionError("Malformed secret encoding") from None
        if len(nonce) != _NONCE_LEN or len(tag) != _TAG_LEN:
            raise DecryptionError("Malformed secret encoding")

        try:
            plaintext = aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise DecryptionError() from None
        return plaintext.decode("utf-8")
