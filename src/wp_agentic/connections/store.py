"""On-disk store of WordPress connections, one JSON file per (account, site).

Credentials are encrypted with :class:`~wp_agentic.security.vault.CredentialVault`
before they touch the disk and decrypted on read; callers never see
ciphertext. Every mutation is scoped to a single row and serialised by that
row's lock file.

Layout::

    <base_dir>/connections/<hash(account)>/<hash(site)>.json
"""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from pathlib import Path

from wp_agentic.clock import Clock, default_clock
from wp_agentic.connections.models import SiteCredentials, WordPressConnection, normalize_site_url
from wp_agentic.security.vault import CredentialVault
from wp_agentic.utils.files import atomic_write, file_lock, hashed_name, read_json

_LOG = logging.getLogger("wp-agentic.connections.store")

_KEEP = object()


class ConnectionStore:
    def __init__(
        self,
        base_dir: str | Path,
        vault: CredentialVault,
        *,
        clock: Clock = default_clock,
    ) -> None:
        self.base_dir = Path(base_dir).expanduser() / "connections"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.vault = vault
        self._clock = clock

    # ---------------- paths ---------------------------------------------- #
    def _account_dir(self, account_id: str) -> Path:
        return self.base_dir / hashed_name(account_id)

    def _row_path(self, account_id: str, site_url: str) -> Path:
        return self._account_dir(account_id) / f"{hashed_name(normalize_site_url(site_url))}.json"

    # ---------------- helpers -------------------------------------------- #
    def _load_row(self, path: Path) -> WordPressConnection | None:
        data = read_json(path)
        return WordPressConnection(**data) if data else None

    def _decrypt(self, row: WordPressConnection) -> SiteCredentials:
        return SiteCredentials(
            account_id=row.account_id,
            site_url=row.site_url,
            access_token=self.vault.decrypt(row.jwt_encrypted),
            write_mode=row.write_mode,
            updated_at=row.updated_at,
            last_used_at=row.last_used_at,
            refresh_token=(
                self.vault.decrypt(row.refresh_encrypted) if row.refresh_encrypted else None
            ),
        )

    def _rows(self, account_id: str) -> list[WordPressConnection]:
        account_dir = self._account_dir(account_id)
        if not account_dir.exists():
            return []
        rows = [row for p in account_dir.glob("*.json") if (row := self._load_row(p))]
        return sorted(rows, key=lambda r: r.updated_at, reverse=True)

    # ---------------- public API ----------------------------------------- #
    def upsert(
        self,
        account_id: str,
        site_url: str,
        jwt: str,
        write_mode: bool,
        *,
        refresh_token: str | None | object = _KEEP,
    ) -> SiteCredentials:
        """Insert or overwrite the (account, site) row, bumping ``updated_at``.

        *refresh_token* defaults to keeping whatever is stored; pass ``None``
        to clear it.
        """
        site = normalize_site_url(site_url)
        path = self._row_path(account_id, site)
        jwt_encrypted = self.vault.encrypt(jwt)
        now = self._clock()

        with file_lock(path.with_suffix(".lock")):
            existing = self._load_row(path)
            if refresh_token is _KEEP:
                refresh_encrypted = existing.refresh_encrypted if existing else None
            elif refresh_token is None:
                refresh_encrypted = None
            else:
                refresh_encrypted = self.vault.encrypt(str(refresh_token))

            if existing is None:
                row = WordPressConnection(
                    account_id=account_id,
                    site_url=site,
                    jwt_encrypted=jwt_encrypted,
                    write_mode=write_mode,
                    created_at=now,
                    updated_at=now,
                    refresh_encrypted=refresh_encrypted,
                )
            else:
                row = replace(
                    existing,
                    jwt_encrypted=jwt_encrypted,
                    write_mode=write_mode,
                    updated_at=now,
                    refresh_encrypted=refresh_encrypted,
                )
            atomic_write(path, asdict(row))

        _LOG.debug("Saved connection account=%s site=%s", account_id, site)
        return self._decrypt(row)

    def get(self, account_id: str, site_url: str) -> SiteCredentials | None:
        row = self._load_row(self._row_path(account_id, site_url))
        return self._decrypt(row) if row else None

    def get_primary(self, account_id: str) -> SiteCredentials | None:
        """Most recently updated connection of the account."""
        rows = self._rows(account_id)
        return self._decrypt(rows[0]) if rows else None

    def list(self, account_id: str) -> list[SiteCredentials]:
        return [self._decrypt(row) for row in self._rows(account_id)]

    def count(self, account_id: str) -> int:
        account_dir = self._account_dir(account_id)
        return len(list(account_dir.glob("*.json"))) if account_dir.exists() else 0

    def exists(self, account_id: str, site_url: str) -> bool:
        return self._row_path(account_id, site_url).exists()

    def set_write_mode(
        self, account_id: str, enabled: bool, *, site_url: str | None = None
    ) -> int:
        """Flip ``write_mode`` without touching credentials or ``updated_at``.

        Applies to *site_url* only when given, otherwise to every connection
        of the account. Returns the number of rows updated.
        """
        if site_url is not None:
            paths = [self._row_path(account_id, site_url)]
        else:
            account_dir = self._account_dir(account_id)
            paths = sorted(account_dir.glob("*.json")) if account_dir.exists() else []

        updated = 0
        for path in paths:
            with file_lock(path.with_suffix(".lock")):
                row = self._load_row(path)
                if row is None:
                    continue
                atomic_write(path, asdict(replace(row, write_mode=enabled)))
                updated += 1
        return updated

    def touch(self, account_id: str, site_url: str) -> None:
        """Record use of a connection (``last_used_at``)."""
        path = self._row_path(account_id, site_url)
        with file_lock(path.with_suffix(".lock")):
            row = self._load_row(path)
            if row is not None:
                atomic_write(path, asdict(replace(row, last_used_at=self._clock())))

    def delete(self, account_id: str, site_url: str) -> bool:
        path = self._row_path(account_id, site_url)
        with file_lock(path.with_suffix(".lock")):
            existed = path.exists()
            path.unlink(missing_ok=True)
        if existed:
            _LOG.info("Deleted connection account=%s site=%s", account_id, normalize_site_url(site_url))
        return existed
