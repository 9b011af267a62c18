"""Stream phase: resolve provider + identifier to a forwardable media stream."""

from __future__ import annotations

import httpx
import structlog

from vidrelay.domain.entities.media import (
    DEFAULT_RANGE,
    InputError,
    Provider,
    ProviderUnsupported,
    ResolutionError,
    ResolutionFailure,
    ResolvedStream,
    UpstreamUnavailable,
)
from vidrelay.domain.ports import (
    PlaybackBackendPort,
    StreamForwarderPort,
    StreamResolverRegistryPort,
)

log = structlog.get_logger(__name__)


class StreamMediaUseCase:
    def __init__(
        self,
        *,
        resolvers: StreamResolverRegistryPort,
        forwarder: StreamForwarderPort,
        backend: PlaybackBackendPort | None = None,
    ) -> None:
        self._resolvers = resolvers
        self._forwarder = forwarder
        self._backend = backend

    async def execute(
        self,
        *,
        stream: str | None,
        provider: str | None,
        identifier: str | None,
        source: str | None = None,
        range_header: str | None = None,
    ) -> ResolvedStream | ResolutionFailure:
        """Never raises for resolution problems; failures come back as values."""
        try:
            resolved = await self._resolve(
                stream, provider, identifier, source, range_header or DEFAULT_RANGE
            )
            return await self._forwarder.prepare(resolved)
        except ResolutionError as exc:
            log.info(
                "stream_failed",
                provider=provider,
                kind=exc.kind,
                status=exc.http_status,
            )
            return exc.to_failure()
        except httpx.HTTPError as exc:
            log.warning("stream_transport_error", provider=provider, error=str(exc))
            return UpstreamUnavailable(
                "Upstream request failed.", details=str(exc)
            ).to_failure()

    async def _resolve(
        self,
        stream: str | None,
        provider: str | None,
        identifier: str | None,
        source: str | None,
        range_header: str,
    ) -> ResolvedStream:
        if not stream:
            raise InputError("Invalid request.")
        if not provider or not identifier:
            raise InputError("The provider and identifier parameters are required.")

        known = Provider.parse(provider)
        resolver = self._resolvers.get(known)
        if resolver is not None:
            target = identifier
            if known in (Provider.DIRECT, Provider.HLS):
                target = source or identifier
            log.info("stream_resolve", provider=provider)
            return await resolver.resolve(target, range_header)

        if self._backend is None:
            raise ProviderUnsupported(
                f"The {provider} provider requires the proxy service."
            )
        playback_url = await self._backend.negotiate(
            provider, source or identifier, identifier
        )
        log.info("stream_via_backend", provider=provider)
        return await self._forwarder.fetch(playback_url, range_header)
