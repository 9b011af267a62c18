"""CSS-selector helpers over BeautifulSoup for scraped provider pages.

Each lookup takes a primary selector plus optional fallbacks; the first
selector that matches wins, so small markup changes on the upstream side
do not break extraction.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag


def parse_html(html: str) -> BeautifulSoup:
    """Parse *html* with lxml."""
    return BeautifulSoup(html, "lxml")


def select_first(
    root: BeautifulSoup | Tag,
    selector: str,
    *fallback_selectors: str,
) -> Tag | None:
    """First element matched by the first selector that matches anything."""
    for sel in (selector, *fallback_selectors):
        match = root.select_one(sel)
        if match is not None:
            return match
    return None


def attr_value(element: Tag, attr: str, default: str = "") -> str:
    """String value of *attr*; multi-valued attributes are space-joined."""
    val = element.get(attr)
    if val is None:
        return default
    if isinstance(val, list):
        return " ".join(val)
    return str(val)


def hidden_inputs(form: Tag) -> dict[str, str]:
    """``name -> value`` for every named hidden input inside *form*."""
    fields: dict[str, str] = {}
    for field in form.select('input[type="hidden"][name]'):
        name = attr_value(field, "name")
        if name:
            fields[name] = attr_value(field, "value")
    return fields
