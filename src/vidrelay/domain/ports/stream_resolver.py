"""Port for resolving a provider identifier to an upstream media stream."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vidrelay.domain.entities.media import Provider, ResolvedStream


@runtime_checkable
class StreamResolverPort(Protocol):
    """Resolves a provider-specific identifier to a forwardable media stream.

    Implementations handle provider-specific workarounds (interstitial
    pages, redirect indirection, lookup APIs).  Failures are raised as
    ``ResolutionError`` subclasses, never as raw transport errors.
    """

    @property
    def provider(self) -> Provider:
        """Provider this resolver handles."""
        ...

    async def resolve(
        self, identifier: str, range_header: str | None = None
    ) -> ResolvedStream:
        """Fetch the media for *identifier*, honouring *range_header*."""
        ...


@runtime_checkable
class StreamResolverRegistryPort(Protocol):
    """Looks up the built-in resolver for a provider."""

    def get(self, provider: Provider | None) -> StreamResolverPort | None: ...

    @property
    def supported_providers(self) -> list[str]: ...
