"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from vidrelay.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from vidrelay.application.use_cases import (
        ResolvePlaybackUseCase,
        StreamMediaUseCase,
    )
    from vidrelay.domain.ports import PlaybackBackendPort
    from vidrelay.infrastructure.resolvers import StreamResolverRegistry
    from vidrelay.infrastructure.streaming import StreamForwarder


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    http_client: httpx.AsyncClient
    forwarder: StreamForwarder
    resolver_registry: StreamResolverRegistry

    # External playback backend (optional, requires proxy_service_url)
    playback_backend: PlaybackBackendPort | None

    # Use cases
    resolve_playback_uc: ResolvePlaybackUseCase
    stream_media_uc: StreamMediaUseCase
