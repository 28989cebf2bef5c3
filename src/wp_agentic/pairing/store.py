"""Concurrency-safe, on-disk storage for device pairing records.

This module defines a *narrow* persistence interface
(:class:`DeviceLinkStore`) and a JSON-file implementation
(:class:`DiskDeviceLinkStore`):

* **Atomicity**: writes use *temp-file + os.replace*.
* **Uniqueness**: each active user code owns an ``O_EXCL``-created index
  file; a collision surfaces as :class:`DuplicateCodeError`, the caller
  retries with a fresh code.
* **Single-use transitions**: approve and consume run under a per-link
  lock file and re-check state after acquiring it.
* **Expiry on read**: stored status is never trusted alone; every
  transition re-checks ``expires_at``. :meth:`delete_expired` is storage
  reclamation only.

Layout under ``<base_dir>/device_links``::

    <device_code_hash>.json     the record
    <device_code_hash>.lock     transition lock
    user_codes/<USER_CODE>      index file containing the device code hash
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, replace
from pathlib import Path
from typing import Protocol, runtime_checkable

from wp_agentic.clock import Clock, default_clock
from wp_agentic.errors import (
    DeviceLinkAlreadyUsedError,
    DeviceLinkExpiredError,
    DeviceLinkNotFoundError,
)
from wp_agentic.pairing.codes import hash_device_code
from wp_agentic.pairing.models import DeviceLink
from wp_agentic.utils.files import atomic_write, create_exclusive, file_lock, read_json

_LOG = logging.getLogger("wp-agentic.pairing.store")


class DuplicateCodeError(Exception):
    """A generated code collides with an active record (uniqueness violation)."""


@runtime_checkable
class DeviceLinkStore(Protocol):
    """Minimal persistence contract for pairing records."""

    def create(self, link: DeviceLink) -> None: ...

    def get_by_device_code(self, device_code: str) -> DeviceLink | None: ...

    def get_by_user_code(self, user_code: str) -> DeviceLink | None: ...

    def approve(
        self,
        user_code: str,
        *,
        site_url: str,
        jwt_encrypted: str,
        write_mode: bool,
        plugin_version: str | None = None,
    ) -> DeviceLink: ...

    def consume(
        self,
        device_code: str,
        *,
        account_id: str,
        persist: Callable[[DeviceLink], None],
    ) -> tuple[DeviceLink, bool]: ...

    def delete_expired(self) -> int: ...


class DiskDeviceLinkStore(DeviceLinkStore):
    """JSON-file implementation of :class:`DeviceLinkStore`."""

    def __init__(self, base_dir: str | Path, *, clock: Clock = default_clock) -> None:
        self.base_dir = Path(base_dir).expanduser() / "device_links"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    # ---------------- paths ---------------------------------------------- #
    def _link_path(self, code_hash: str) -> Path:
        return self.base_dir / f"{code_hash}.json"

    def _lock_path(self, code_hash: str) -> Path:
        return self.base_dir / f"{code_hash}.lock"

    def _index_path(self, user_code: str) -> Path:
        return self.base_dir / "user_codes" / user_code

    # ---------------- reads ---------------------------------------------- #
    def _load(self, code_hash: str) -> DeviceLink | None:
        data = read_json(self._link_path(code_hash))
        return DeviceLink(**data) if data else None

    def _hash_for_user_code(self, user_code: str) -> str | None:
        try:
            return self._index_path(user_code).read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None

    def get_by_device_code(self, device_code: str) -> DeviceLink | None:
        return self._load(hash_device_code(device_code))

    def get_by_user_code(self, user_code: str) -> DeviceLink | None:
        code_hash = self._hash_for_user_code(user_code)
        return self._load(code_hash) if code_hash else None

    # ---------------- create --------------------------------------------- #
    def _reclaim_expired_index(self, user_code: str) -> bool:
        """Drop an index entry whose link is gone or expired; True if removed."""
        current = self.get_by_user_code(user_code)
        if current is not None and not current.is_expired(clock=self._clock):
            return False
        self._index_path(user_code).unlink(missing_ok=True)
        return True

    def create(self, link: DeviceLink) -> None:
        if self._link_path(link.device_code_hash).exists():
            raise DuplicateCodeError("device code collision")
        if not create_exclusive(self._index_path(link.user_code), link.device_code_hash):
            if not self._reclaim_expired_index(link.user_code) or not create_exclusive(
                self._index_path(link.user_code), link.device_code_hash
            ):
                raise DuplicateCodeError("user code collision")
        atomic_write(self._link_path(link.device_code_hash), asdict(link))

    # ---------------- transitions ---------------------------------------- #
    def approve(
        self,
        user_code: str,
        *,
        site_url: str,
        jwt_encrypted: str,
        write_mode: bool,
        plugin_version: str | None = None,
    ) -> DeviceLink:
        """Move a pending link to ``approved`` exactly once."""
        code_hash = self._hash_for_user_code(user_code)
        if not code_hash:
            raise DeviceLinkNotFoundError()

        with file_lock(self._lock_path(code_hash)):
            link = self._load(code_hash)
            if link is None:
                raise DeviceLinkNotFoundError()
            if link.is_expired(clock=self._clock):
                raise DeviceLinkExpiredError()
            if link.status != "pending":
                raise DeviceLinkAlreadyUsedError()

            approved = replace(
                link,
                status="approved",
                site_url=site_url,
                jwt_encrypted=jwt_encrypted,
                write_mode=write_mode,
                plugin_version=plugin_version,
                approved_at=self._clock(),
            )
            atomic_write(self._link_path(code_hash), asdict(approved))
        return approved

    def consume(
        self,
        device_code: str,
        *,
        account_id: str,
        persist: Callable[[DeviceLink], None],
    ) -> tuple[DeviceLink, bool]:
        """Run *persist* and mark the link consumed, under the link lock.

        Returns ``(link, performed)``. ``performed`` is False when the link was
        not in ``approved`` state once the lock was held (for example a
        concurrent poll consumed it first); *persist* is not called then.
        If *persist* raises, the link stays ``approved``.

        The record is only marked consumed **after** *persist* returns, so a
        reader observing ``consumed`` is guaranteed the connection exists.
        """
        code_hash = hash_device_code(device_code)
        with file_lock(self._lock_path(code_hash)):
            link = self._load(code_hash)
            if link is None:
                raise DeviceLinkNotFoundError()
            if link.is_expired(clock=self._clock):
                raise DeviceLinkExpiredError()
            if link.status != "approved":
                return link, False

            persist(link)

            consumed = replace(
                link,
                status="consumed",
                jwt_encrypted=None,
                consumed_at=self._clock(),
                consumed_by=account_id,
            )
            atomic_write(self._link_path(code_hash), asdict(consumed))
        return consumed, True

    # ---------------- maintenance ---------------------------------------- #
    def delete_expired(self) -> int:
        removed = 0
        for path in self.base_dir.glob("*.json"):
            try:
                data = read_json(path)
                if not data:
                    continue
                link = DeviceLink(**data)
                if not link.is_expired(clock=self._clock):
                    continue
                index = self._index_path(link.user_code)
                if self._hash_for_user_code(link.user_code) == link.device_code_hash:
                    index.unlink(missing_ok=True)
                path.unlink(missing_ok=True)
                removed += 1
            except (OSError, ValueError, TypeError) as exc:
                _LOG.debug("Skipping unreadable device link %s: %s", path.name, exc)
        if removed:
            _LOG.info("Removed %d expired device links", removed)
        return removed
