"""Registry that dispatches stream resolution to per-provider resolvers."""

from __future__ import annotations

import structlog

from vidrelay.domain.entities.media import Provider
from vidrelay.domain.ports.stream_resolver import StreamResolverPort

log = structlog.get_logger(__name__)


class StreamResolverRegistry:
    """Maps providers to their built-in resolver.

    Providers without a registered resolver are handled by the external
    playback backend (or rejected) one layer up.
    """

    def __init__(self, resolvers: list[StreamResolverPort] | None = None) -> None:
        self._resolvers: dict[Provider, StreamResolverPort] = {}
        for resolver in resolvers or []:
            self.register(resolver)

    def register(self, resolver: StreamResolverPort) -> None:
        self._resolvers[resolver.provider] = resolver
        log.debug("stream_resolver_registered", provider=resolver.provider.value)

    def get(self, provider: Provider | None) -> StreamResolverPort | None:
        if provider is None:
            return None
        return self._resolvers.get(provider)

    @property
    def supported_providers(self) -> list[str]:
        """Return wire names of providers with a built-in resolver."""
        return [p.value for p in self._resolvers]
