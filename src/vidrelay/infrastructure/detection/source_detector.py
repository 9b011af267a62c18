"""Classify arbitrary user input into a provider + identifier.

Accepts full URLs, embed snippets (``<iframe src="...">``) and free text
that contains a link somewhere.  Pure functions, no I/O.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

import structlog

from vidrelay.domain.entities.media import Provider, SourceReference

log = structlog.get_logger(__name__)

# Embedded snippets are unwrapped once; the extracted URL is classified
# without further recursion.
_MAX_EMBED_DEPTH = 1

_VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".mkv")
_HLS_EXTENSION = ".m3u8"

_DRIVE_HOSTS = ("drive.google.com", "drive.usercontent.google.com")
_DRIVE_FILE_PATH_RE = re.compile(r"/file/d/([^/?#]+)")
_DRIVE_DOWNLOAD_PATH_RE = re.compile(r"/download/([^/?#]+)")
_SRC_ATTR_RE = re.compile(r"""src\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_BARE_URL_RE = re.compile(r"""https?://[^\s"'<>]+""", re.IGNORECASE)

_MIN_VIDMOLY_SLUG_LENGTH = 6


def _last_path_segment(path: str) -> str | None:
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else None


def _extension_provider(value: str) -> Provider | None:
    path = value.lower().split("?", 1)[0].split("#", 1)[0]
    if path.endswith(_HLS_EXTENSION):
        return Provider.HLS
    if path.endswith(_VIDEO_EXTENSIONS):
        return Provider.DIRECT
    return None


def extract_drive_file_id(url: str) -> str | None:
    """Pull the file id out of a Drive URL.

    Lookup order: ``?id=`` query parameter, ``/file/d/<id>``, ``/download/<id>``.
    """
    ids = parse_qs(urlparse(url).query).get("id")
    if ids and ids[0]:
        return ids[0]
    for pattern in (_DRIVE_FILE_PATH_RE, _DRIVE_DOWNLOAD_PATH_RE):
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def _classify_url(trimmed: str, host: str, path: str) -> SourceReference | None:
    if host in _DRIVE_HOSTS:
        file_id = extract_drive_file_id(trimmed)
        if file_id:
            return SourceReference(Provider.GOOGLE_DRIVE, file_id, trimmed)

    if "vidmoly" in host:
        slug = _last_path_segment(path)
        if slug and len(slug) >= _MIN_VIDMOLY_SLUG_LENGTH:
            return SourceReference(Provider.VIDMOLY, slug, trimmed)

    if "voe" in host:
        slug = _last_path_segment(path)
        return SourceReference(Provider.VOE, slug or trimmed, trimmed)

    by_extension = _extension_provider(path)
    if by_extension is not None:
        return SourceReference(by_extension, trimmed, trimmed)

    if "streamtape" in host:
        return SourceReference(Provider.STREAMTAPE, trimmed, trimmed)

    if "dood" in host:
        return SourceReference(Provider.DOOD, trimmed, trimmed)

    return None


def detect_source(value: str, *, depth: int = 0) -> SourceReference:
    """Classify *value*.

    Never raises.  Unrecognised input yields ``Provider.UNKNOWN`` with the
    trimmed input as identifier.  Classifying ``result.original`` again
    yields the same result.
    """
    trimmed = (value or "").strip()
    unknown = SourceReference(Provider.UNKNOWN, trimmed, trimmed)
    if not trimmed:
        return unknown

    parsed = urlparse(trimmed)
    if parsed.scheme in ("http", "https") and parsed.netloc and " " not in trimmed:
        host = (parsed.hostname or "").lower()
        result = _classify_url(trimmed, host, parsed.path)
        return result or unknown

    by_extension = _extension_provider(trimmed)
    if by_extension is not None:
        return SourceReference(by_extension, trimmed, trimmed)

    if depth >= _MAX_EMBED_DEPTH:
        return unknown

    src_match = _SRC_ATTR_RE.search(trimmed)
    if src_match:
        embedded = src_match.group(1)
    else:
        url_match = _BARE_URL_RE.search(trimmed)
        if url_match is None:
            return unknown
        embedded = url_match.group(0)

    log.debug("source_embedded_url_found", depth=depth)
    return detect_source(embedded, depth=depth + 1)
