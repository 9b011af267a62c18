"""Shared httpx client construction."""

from __future__ import annotations

from http.cookiejar import CookieJar as StdCookieJar
from http.cookiejar import DefaultCookiePolicy

import httpx

from vidrelay.infrastructure.config.schema import AppConfig


def refusing_cookie_jar() -> StdCookieJar:
    """A stdlib jar whose policy rejects every cookie.

    The shared client must never remember upstream cookies; each
    resolution tracks its own cookies explicitly.
    """
    return StdCookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def create_http_client(config: AppConfig) -> httpx.AsyncClient:
    """Build the process-wide client: pooled connections, no cookie memory.

    Redirects are off by default; resolvers opt in per request because
    several steps need to inspect ``Location`` themselves.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=False,
        cookies=refusing_cookie_jar(),
    )
