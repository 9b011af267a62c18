"""Client for the optional external playback backend.

Contract: ``POST {provider, source, identifier}`` answered by
``{"playbackUrl": "..."}``.
"""

from __future__ import annotations

import httpx
import structlog

from vidrelay.domain.entities.media import UpstreamUnavailable

log = structlog.get_logger(__name__)

_ERROR_BODY_LIMIT = 2000


class HttpxPlaybackBackend:
    """``PlaybackBackendPort`` over the shared httpx client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        service_url: str,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._http = http_client
        self._url = service_url
        self._timeout = timeout_seconds

    async def negotiate(self, provider: str, source: str, identifier: str) -> str:
        payload = {"provider": provider, "source": source, "identifier": identifier}
        try:
            resp = await self._http.post(self._url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as exc:
            log.warning("backend_unreachable", provider=provider, error=str(exc))
            raise UpstreamUnavailable(
                "Error reaching the proxy service.",
                kind="backend-unreachable",
                details=str(exc),
            ) from exc

        if not resp.is_success:
            log.info("backend_rejected", provider=provider, status=resp.status_code)
            raise UpstreamUnavailable(
                "The proxy service returned an error.",
                kind="backend-error",
                details=resp.text[:_ERROR_BODY_LIMIT] or None,
                http_status=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError:
            data = None
        playback_url = data.get("playbackUrl") if isinstance(data, dict) else None
        if not playback_url or not isinstance(playback_url, str):
            raise UpstreamUnavailable(
                "The proxy service did not return the expected data.",
                kind="backend-malformed",
            )

        log.info("backend_playback_negotiated", provider=provider)
        return playback_url
