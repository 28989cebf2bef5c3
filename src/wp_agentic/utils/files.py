"""Atomic JSON persistence and advisory lock files.

* Writes go through *temp-file + os.replace* so readers never observe a
  half-written record.
* Locks are ``O_EXCL``-created marker files; a lock older than
  ``stale_after`` seconds is treated as abandoned by a crashed process.
* Externally supplied identifiers are hashed before they reach the
  filesystem.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from hashlib import sha256
from pathlib import Path
from typing import Any

_LOG = logging.getLogger("wp-agentic.utils.files")


def hashed_name(text: str, length: int = 16) -> str:
    return sha256(text.encode("utf-8")).hexdigest()[:length]


def atomic_write(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".{os.getpid()}.tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)


def read_json(path: Path) -> dict[str, Any] | None:
    try:
        with path.open(encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None


def create_exclusive(path: Path, content: str) -> bool:
    """Create *path* with *content* only if it does not exist yet."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
    except FileExistsError:
        return False
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(content)
    return True


def _break_stale_lock(lock_path: Path, stale_after: float) -> None:
    try:
        age = time.time() - lock_path.stat().st_mtime
    except FileNotFoundError:
        return
    if age > stale_after:
        _LOG.warning("Removing stale lock %s (age %.1fs)", lock_path.name, age)
        lock_path.unlink(missing_ok=True)


@contextmanager
def file_lock(
    lock_path: Path,
    retries: int = 50,
    delay: float = 0.05,
    stale_after: float = 30.0,
) -> Iterator[None]:
    """Advisory lock via ``O_EXCL`` marker-file creation.

    Raises ``TimeoutError`` once *retries* attempts are exhausted.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    for attempt in range(retries + 1):
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.close(fd)
            break
        except FileExistsError:
            if attempt == retries:
                raise TimeoutError(f"Could not acquire lock {lock_path.name}") from None
            _break_stale_lock(lock_path, stale_after)
            time.sleep(delay)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)
