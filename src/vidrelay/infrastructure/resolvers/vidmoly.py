"""Vidmoly resolver: scrape the embed page, then ask the lookup API.

Pipeline per request (one attempt per step):

1. ``page``: fetch ``https://vidmoly.me/<slug>``.
2. ``video-id``: pull the internal id out of the page markup.
3. ``lookup``: ``GET https://api.vevioz.com/api/button/videos/<id>``,
   answering ``{"videos": [{"quality": "1080p", "url": "..."}]}``.
4. ``candidates``: choose the highest quality candidate.
5. ``media``: Range-aware fetch of that URL with provider Referer/Origin.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
import structlog

from vidrelay.domain.entities.media import (
    DEFAULT_RANGE,
    Provider,
    ResolvedStream,
    UpstreamUnavailable,
)
from vidrelay.infrastructure.config.schema import ResolverConfig
from vidrelay.infrastructure.resolvers.constants import MEDIA_HEADERS, PAGE_HEADERS
from vidrelay.infrastructure.streaming.forwarder import stream_from_response

log = structlog.get_logger(__name__)

_ORIGIN = "https://vidmoly.me"
_LOOKUP_API = "https://api.vevioz.com/api/button/videos"

_VIDEO_ID_PATTERNS = (
    re.compile(r"""video_id['"]\s*[:=]\s*['"]([^'"&]+)""", re.IGNORECASE),
    re.compile(r"vidmoly\.me/([a-zA-Z0-9]+)", re.IGNORECASE),
)
_QUALITY_RE = re.compile(r"^\s*(\d+)")


class VidmolyStepError(UpstreamUnavailable):
    """A named pipeline step failed."""

    default_kind = "vidmoly-failed"
    default_status = 500

    def __init__(self, step: str, reason: str) -> None:
        super().__init__(
            "Error loading the Vidmoly video.",
            kind=f"vidmoly-{step}",
            details=f"Vidmoly {step} step failed: {reason}",
        )
        self.step = step


def extract_video_id(page_html: str) -> str | None:
    for pattern in _VIDEO_ID_PATTERNS:
        m = pattern.search(page_html)
        if m and m.group(1):
            return m.group(1)
    return None


def quality_value(quality: Any) -> int:
    """Leading number of the label (``"1080p HD"`` -> 1080); otherwise 0."""
    if isinstance(quality, bool):
        return 0
    if isinstance(quality, int):
        return quality
    if not isinstance(quality, str):
        return 0
    m = _QUALITY_RE.match(quality)
    return int(m.group(1)) if m else 0


def select_best_candidate(candidates: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Highest quality first; ties keep their original order."""
    if not candidates:
        return None
    ranked = sorted(
        candidates, key=lambda c: quality_value(c.get("quality")), reverse=True
    )
    return ranked[0]


class VidmolyResolver:
    """``StreamResolverPort`` for vidmoly slugs."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        config: ResolverConfig,
        user_agent: str,
    ) -> None:
        self._http = http_client
        self._config = config
        self._user_agent = user_agent

    @property
    def provider(self) -> Provider:
        return Provider.VIDMOLY

    async def resolve(
        self, identifier: str, range_header: str | None = None
    ) -> ResolvedStream:
        slug = identifier.strip().strip("/").rsplit("/", 1)[-1]
        page_url = f"{_ORIGIN}/{slug}"

        page_html = await self._fetch_page(page_url)

        video_id = extract_video_id(page_html)
        if not video_id:
            raise VidmolyStepError("video-id", "no video id in page markup")
        log.debug("vidmoly_video_id", slug=slug, video_id=video_id)

        candidates = await self._lookup(video_id, page_url)
        best = select_best_candidate(candidates)
        media_url = best.get("url") if best else None
        if not media_url or not isinstance(media_url, str):
            raise VidmolyStepError("candidates", "no playable candidate URL")
        log.info(
            "vidmoly_candidate_selected",
            slug=slug,
            quality=best.get("quality") if best else None,
            candidates=len(candidates),
        )

        return await self._fetch_media(media_url, page_url, range_header)

    async def _fetch_page(self, page_url: str) -> str:
        headers = {
            **PAGE_HEADERS,
            "User-Agent": self._user_agent,
            "Referer": "https://www.google.com/",
        }
        try:
            resp = await self._http.get(
                page_url,
                headers=headers,
                timeout=self._config.page_timeout_seconds,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            raise VidmolyStepError("page", str(exc)) from exc
        if not resp.is_success:
            raise VidmolyStepError("page", f"HTTP {resp.status_code}")
        return resp.text

    async def _lookup(self, video_id: str, page_url: str) -> list[dict[str, Any]]:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/json",
            "Referer": page_url,
            "Origin": _ORIGIN,
        }
        try:
            resp = await self._http.get(
                f"{_LOOKUP_API}/{video_id}",
                headers=headers,
                timeout=self._config.api_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            log.warning("vidmoly_lookup_failed", video_id=video_id, error=str(exc))
            raise VidmolyStepError("lookup", str(exc)) from exc
        if not resp.is_success:
            log.warning(
                "vidmoly_lookup_failed", video_id=video_id, status=resp.status_code
            )
            raise VidmolyStepError("lookup", f"HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise VidmolyStepError("lookup", "response is not JSON") from exc

        videos = data.get("videos") if isinstance(data, dict) else None
        if not isinstance(videos, list) or not videos:
            raise VidmolyStepError("candidates", "no video sources in lookup response")
        return [v for v in videos if isinstance(v, dict)]

    async def _fetch_media(
        self, media_url: str, page_url: str, range_header: str | None
    ) -> ResolvedStream:
        headers = {
            **MEDIA_HEADERS,
            "User-Agent": self._user_agent,
            "Referer": page_url,
            "Origin": _ORIGIN,
            "Range": range_header or DEFAULT_RANGE,
        }
        try:
            resp = await self._http.send(
                self._http.build_request(
                    "GET",
                    media_url,
                    headers=headers,
                    timeout=self._config.media_timeout_seconds,
                ),
                stream=True,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            raise VidmolyStepError("media", str(exc)) from exc

        if not resp.is_success:
            await resp.aclose()
            raise VidmolyStepError("media", f"HTTP {resp.status_code}")

        return stream_from_response(resp, chunk_size=self._config.chunk_size)
