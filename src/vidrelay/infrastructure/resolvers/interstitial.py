"""Parser for download-confirmation interstitial pages."""

from __future__ import annotations

import re

from vidrelay.domain.ports.interstitial_parser import InterstitialForm
from vidrelay.infrastructure.common.html_selectors import (
    attr_value,
    hidden_inputs,
    parse_html,
    select_first,
)

_CONFIRM_PARAM_RE = re.compile(r"confirm=([0-9A-Za-z_-]+)")

# Drive marks its confirmation form; any form with an action is the fallback.
_FORM_SELECTORS = ("form#download-form[action]", "form[action]")


class SoupInterstitialParser:
    """Default ``InterstitialParserPort`` implementation (BeautifulSoup)."""

    def parse_form(self, html: str) -> InterstitialForm | None:
        soup = parse_html(html)
        form = select_first(soup, *_FORM_SELECTORS)
        if form is None:
            return None
        action = attr_value(form, "action").strip()
        if not action:
            return None

        confirm = form.select_one('input[name="confirm"]')
        token = attr_value(confirm, "value") if confirm is not None else ""
        if not token:
            token = self.extract_confirm_token(html) or ""
        if not token:
            return None

        return InterstitialForm(
            action=action,
            confirm_token=token,
            fields=hidden_inputs(form),
        )

    def extract_confirm_token(self, text: str) -> str | None:
        m = _CONFIRM_PARAM_RE.search(text)
        return m.group(1) if m else None
