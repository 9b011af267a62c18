"""Per-resolution cookie jar fed from upstream ``Set-Cookie`` headers."""

from __future__ import annotations

from collections.abc import Mapping

import httpx


class CookieJar:
    """Ordered ``name -> value`` store scoped to a single resolution call.

    Merge policy is last-write-wins: a later ``Set-Cookie`` for an existing
    name replaces its value but keeps the name's original position, so the
    rendered ``Cookie`` header stays in first-seen order.  Attributes
    (``Path``, ``Expires``, ...) are ignored; the jar is thrown away when
    the call ends.
    """

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def add_set_cookie(self, header: str) -> None:
        """Merge one raw ``Set-Cookie`` header value."""
        pair = header.split(";", 1)[0]
        name, _, value = pair.partition("=")
        name = name.strip()
        if not name:
            return
        self._values[name] = value.strip()

    def absorb(self, response: httpx.Response) -> None:
        """Merge every ``Set-Cookie`` header of *response*."""
        for header in response.headers.get_list("set-cookie"):
            self.add_set_cookie(header)

    def header_value(self) -> str | None:
        """Render as a ``Cookie`` header value, ``None`` when empty."""
        if not self._values:
            return None
        return "; ".join(f"{name}={value}" for name, value in self._values.items())

    def apply(self, headers: Mapping[str, str]) -> dict[str, str]:
        """Return a copy of *headers* carrying the jar's ``Cookie`` header."""
        merged = dict(headers)
        value = self.header_value()
        if value:
            merged["Cookie"] = value
        return merged
