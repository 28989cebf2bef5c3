"""Selection and short-lived credential cookies.

``wp_base`` names the active site, ``wp_write_mode`` mirrors its flag
(``"1"``/``"0"``), ``wp_jwt`` caches the access token and ``wp_refresh`` the
refresh token. All are httpOnly, ``SameSite=Lax``. The connection store stays
the source of truth; cookies are a cache.
"""

from __future__ import annotations

from typing import Final

from starlette.requests import Request
from starlette.responses import Response

from wp_agentic.connections.models import normalize_site_url

SITE_COOKIE: Final[str] = "wp_base"
ACCESS_COOKIE: Final[str] = "wp_jwt"
REFRESH_COOKIE: Final[str] = "wp_refresh"
WRITE_MODE_COOKIE: Final[str] = "wp_write_mode"

WEEK_SECONDS: Final[int] = 60 * 60 * 24 * 7
REFRESH_MAX_AGE: Final[int] = 60 * 60 * 24 * 30


def _set(response: Response, name: str, value: str, max_age: int, secure: bool) -> None:
    response.set_cookie(
        name, value, max_age=max_age, path="/", httponly=True, samesite="lax", secure=secure
    )


def active_site(request: Request) -> str | None:
    value = request.cookies.get(SITE_COOKIE)
    return normalize_site_url(value) if value else None


def set_site_cookies(
    response: Response,
    *,
    site_url: str,
    access_token: str | None,
    write_mode: bool,
    secure: bool = False,
) -> None:
    _set(response, SITE_COOKIE, normalize_site_url(site_url), WEEK_SECONDS, secure)
    set_write_mode_cookie(response, write_mode, secure=secure)
    if access_token:
        _set(response, ACCESS_COOKIE, access_token, WEEK_SECONDS, secure)


def set_write_mode_cookie(response: Response, enabled: bool, *, secure: bool = False) -> None:
    _set(response, WRITE_MODE_COOKIE, "1" if enabled else "0", WEEK_SECONDS, secure)


def set_token_cookies(
    response: Response,
    *,
    access_token: str,
    expires_in: int,
    refresh_token: str | None = None,
    secure: bool = False,
) -> None:
    """``wp_jwt`` lives exactly as long as the token itself."""
    _set(response, ACCESS_COOKIE, access_token, expires_in, secure)
    if refresh_token:
        _set(response, REFRESH_COOKIE, refresh_token, REFRESH_MAX_AGE, secure)


def clear_token_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/")


def clear_site_cookies(response: Response) -> None:
    for name in (SITE_COOKIE, WRITE_MODE_COOKIE, ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/")
