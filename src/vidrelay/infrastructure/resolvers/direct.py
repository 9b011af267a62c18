"""Passthrough resolver for plain media and HLS URLs."""

from __future__ import annotations

from vidrelay.domain.entities.media import InputError, Provider, ResolvedStream
from vidrelay.infrastructure.streaming.forwarder import StreamForwarder


class DirectResolver:
    """The identifier already is the media URL; fetch and forward it."""

    def __init__(self, forwarder: StreamForwarder, *, provider: Provider) -> None:
        self._forwarder = forwarder
        self._provider = provider

    @property
    def provider(self) -> Provider:
        return self._provider

    async def resolve(
        self, identifier: str, range_header: str | None = None
    ) -> ResolvedStream:
        url = identifier.strip()
        if not url.lower().startswith(("http://", "https://")):
            raise InputError(f"Not a fetchable URL: {url[:80]}")
        return await self._forwarder.fetch(url, range_header)
