"""Resolve phase: turn a user-supplied source into a playback URL."""

from __future__ import annotations

from collections.abc import Callable
from urllib.parse import quote

import httpx
import structlog

from vidrelay.domain.entities.media import (
    InputError,
    Provider,
    ProviderUnsupported,
    ResolutionError,
    ResolutionFailure,
    SourceReference,
    UpstreamUnavailable,
    extract_drive_id,
)
from vidrelay.domain.ports.playback_backend import PlaybackBackendPort

log = structlog.get_logger(__name__)

# Providers resolved in-process; everything else needs the backend.
_PASSTHROUGH = frozenset({Provider.DIRECT, Provider.HLS})


class ResolvePlaybackUseCase:
    """Classifies a source and answers with the URL the player should load.

    Built-in providers get a URL pointing back at the stream endpoint;
    direct media is played as-is; other providers are negotiated with
    the external backend when one is configured.
    """

    def __init__(
        self,
        *,
        detect: Callable[[str], SourceReference],
        stream_path: str,
        backend: PlaybackBackendPort | None = None,
    ) -> None:
        self._detect = detect
        self._stream_path = stream_path
        self._backend = backend

    async def execute(
        self,
        *,
        source: str | None,
        provider: str | None = None,
        identifier: str | None = None,
    ) -> str | ResolutionFailure:
        try:
            return await self._resolve(source, provider, identifier)
        except ResolutionError as exc:
            log.info("playback_resolve_failed", kind=exc.kind, status=exc.http_status)
            return exc.to_failure()
        except httpx.HTTPError as exc:
            log.warning("playback_resolve_transport_error", error=str(exc))
            return UpstreamUnavailable(
                "Upstream request failed.", details=str(exc)
            ).to_failure()

    def _stream_url(self, provider: Provider, identifier: str) -> str:
        return (
            f"{self._stream_path}?stream=1&provider={provider.value}"
            f"&identifier={quote(identifier, safe='')}"
        )

    async def _resolve(
        self, source: str | None, provider: str | None, identifier: str | None
    ) -> str:
        if not source or not source.strip():
            raise InputError("The source field is required.")

        detected = self._detect(source)
        provider_name = (provider or "").strip() or detected.provider.value
        identifier = identifier if identifier is not None else detected.identifier
        known = Provider.parse(provider_name)

        if known is Provider.UNKNOWN:
            raise InputError("Unsupported source link.")

        normalized = identifier if identifier and identifier.strip() else source
        log.info("playback_resolve", provider=provider_name)

        if known in _PASSTHROUGH:
            return source

        if known is Provider.VIDMOLY:
            segments = [s for s in normalized.split("/") if s]
            if not segments:
                raise InputError("Invalid Vidmoly link.")
            return self._stream_url(known, segments[-1])

        if known is Provider.GOOGLE_DRIVE:
            file_id = extract_drive_id(normalized)
            if not file_id:
                raise UpstreamUnavailable(
                    "Could not resolve the Google Drive file id.",
                    kind="invalid-drive-id",
                )
            return self._stream_url(known, file_id)

        if self._backend is None:
            raise ProviderUnsupported(
                f"The {provider_name} provider requires the proxy service."
            )
        return await self._backend.negotiate(provider_name, source, normalized)
