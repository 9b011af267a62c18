"""Port for relaying upstream media to the client."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vidrelay.domain.entities.media import ResolvedStream


@runtime_checkable
class StreamForwarderPort(Protocol):
    async def prepare(self, stream: ResolvedStream) -> ResolvedStream:
        """Apply the client-facing header policy; reject HTML bodies."""
        ...

    async def fetch(self, url: str, range_header: str | None = None) -> ResolvedStream:
        """Fetch an absolute media URL as a stream."""
        ...
