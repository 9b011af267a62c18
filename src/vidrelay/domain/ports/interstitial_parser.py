"""Port for parsing download-confirmation interstitial pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class InterstitialForm:
    """Download form found on a confirmation page."""

    action: str
    confirm_token: str
    fields: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class InterstitialParserPort(Protocol):
    """Extracts the confirmation form from an interstitial HTML page.

    Upstream markup changes are isolated behind this capability; callers
    only see ``InterstitialForm`` values.
    """

    def parse_form(self, html: str) -> InterstitialForm | None:
        """Return the download form, or ``None`` if the page has none."""
        ...

    def extract_confirm_token(self, text: str) -> str | None:
        """Find a bare ``confirm=<token>`` value in *text* (URL or HTML)."""
        ...
