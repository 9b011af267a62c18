"""Port for the optional external playback-URL backend."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PlaybackBackendPort(Protocol):
    """Negotiates a playback URL for providers without a built-in resolver."""

    async def negotiate(self, provider: str, source: str, identifier: str) -> str:
        """Return the playback URL or raise ``ResolutionError``."""
        ...
