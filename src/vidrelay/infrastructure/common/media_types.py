"""Content-type classification for upstream responses."""

from __future__ import annotations

from collections.abc import Mapping

_BINARY_TYPES = frozenset(
    {
        "application/octet-stream",
        "application/x-mpegurl",
        "application/vnd.apple.mpegurl",
    }
)


def base_content_type(content_type: str | None) -> str:
    """``"Video/MP4; codecs=x"`` -> ``"video/mp4"``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_html(content_type: str | None) -> bool:
    return "text/html" in (content_type or "").lower()


def is_hls(content_type: str | None) -> bool:
    return "mpegurl" in (content_type or "").lower()


def is_media_response(headers: Mapping[str, str]) -> bool:
    """True when headers describe a video/audio/binary body.

    A ``Content-Disposition`` carrying a filename counts as binary even
    when the content type is missing or generic.
    """
    content_type = headers.get("content-type", "")
    if is_html(content_type):
        return False
    base = base_content_type(content_type)
    if (
        base.startswith("video/")
        or base.startswith("audio/")
        or base in _BINARY_TYPES
        or "stream" in base
    ):
        return True
    return "filename=" in headers.get("content-disposition", "").lower()
