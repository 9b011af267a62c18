"""Relay upstream media responses to the client without buffering.

Upstream headers are filtered through an allow-list, CORS and no-cache
headers are added, and the body is handed on as a lazy chunk iterator
whose ``finally`` closes the upstream connection.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping

import httpx
import structlog

from vidrelay.domain.entities.media import ResolvedStream, UpstreamUnavailable
from vidrelay.infrastructure.common.media_types import is_html

log = structlog.get_logger(__name__)

FORWARDED_HEADERS: tuple[str, ...] = (
    "content-type",
    "content-length",
    "accept-ranges",
    "content-range",
    "content-disposition",
    "cache-control",
    "etag",
    "last-modified",
)

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Range",
    "Access-Control-Expose-Headers": ",".join(FORWARDED_HEADERS),
}

NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

_ERROR_BODY_LIMIT = 2000


def build_forward_headers(upstream: Mapping[str, str]) -> dict[str, str]:
    """Filter upstream headers and add CORS/no-cache/range headers."""
    lowered = {k.lower(): v for k, v in upstream.items()}
    headers: dict[str, str] = {}
    for name in FORWARDED_HEADERS:
        value = lowered.get(name)
        if value:
            headers[name] = value

    # httpx hands us decoded bytes, so a compressed length no longer applies
    encoding = lowered.get("content-encoding", "identity").strip().lower()
    if encoding not in ("", "identity"):
        headers.pop("content-length", None)

    headers.setdefault("content-type", "application/octet-stream")
    headers.update(CORS_HEADERS)
    headers.pop("cache-control", None)
    headers.update(NO_CACHE_HEADERS)
    headers["accept-ranges"] = "bytes"
    return headers


def stream_from_response(
    resp: httpx.Response,
    *,
    chunk_size: int = 65536,
    headers: Mapping[str, str] | None = None,
) -> ResolvedStream:
    """Wrap an open ``stream=True`` response as a ``ResolvedStream``.

    The iterator closes *resp* when drained, cancelled or failed; the
    returned ``close`` callable covers the case where iteration never
    starts.  Closing twice is harmless.
    """

    async def _iter() -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.aiter_bytes(chunk_size=chunk_size):
                yield chunk
        finally:
            await resp.aclose()

    return ResolvedStream(
        status_code=resp.status_code,
        headers=dict(headers if headers is not None else resp.headers),
        body=_iter(),
        close=resp.aclose,
    )


async def _read_text(resp: httpx.Response) -> str | None:
    try:
        await resp.aread()
        return resp.text[:_ERROR_BODY_LIMIT]
    except httpx.HTTPError:
        return None
    finally:
        await resp.aclose()


class StreamForwarder:
    """Turns resolved upstream responses into client-ready streams."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        user_agent: str,
        chunk_size: int = 65536,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._http = http_client
        self._user_agent = user_agent
        self._chunk_size = chunk_size
        self._timeout = timeout_seconds

    async def prepare(self, stream: ResolvedStream) -> ResolvedStream:
        """Apply the header policy; refuse HTML bodies.

        Raises ``UpstreamUnavailable`` (502) after closing the upstream
        when the resolved response is an HTML page.
        """
        content_type = stream.headers.get("content-type") or next(
            (v for k, v in stream.headers.items() if k.lower() == "content-type"),
            "",
        )
        if is_html(content_type):
            await stream.aclose()
            log.warning("forward_refused_html", status=stream.status_code)
            raise UpstreamUnavailable(
                "The source cannot be streamed as video.",
                kind="html-response",
                details=f"Upstream answered with {content_type}",
            )
        return ResolvedStream(
            status_code=stream.status_code,
            headers=build_forward_headers(stream.headers),
            body=stream.body,
            close=stream.close,
        )

    async def fetch(self, url: str, range_header: str | None = None) -> ResolvedStream:
        """GET *url* (following redirects) and return it as a stream.

        Non-2xx answers raise ``UpstreamUnavailable`` carrying the upstream
        status and body text.  Transport errors are wrapped as 502.
        """
        headers = {"User-Agent": self._user_agent, "Accept": "*/*"}
        if range_header:
            headers["Range"] = range_header
        try:
            resp = await self._http.send(
                self._http.build_request(
                    "GET", url, headers=headers, timeout=self._timeout
                ),
                stream=True,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            log.warning("forward_fetch_failed", url=url[:120], error=str(exc))
            raise UpstreamUnavailable(
                "The source could not be fetched.",
                kind="fetch-failed",
                details=str(exc),
            ) from exc

        if not resp.is_success:
            text = await _read_text(resp)
            log.info("forward_fetch_rejected", url=url[:120], status=resp.status_code)
            raise UpstreamUnavailable(
                "The source could not be retrieved.",
                kind="upstream-status",
                details=text,
                http_status=resp.status_code,
            )

        if is_html(resp.headers.get("content-type")):
            text = await _read_text(resp)
            raise UpstreamUnavailable(
                "The source cannot be streamed as video.",
                kind="html-response",
                details=text,
            )

        return stream_from_response(resp, chunk_size=self._chunk_size)
