"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import structlog
from fastapi import FastAPI

from vidrelay.application.use_cases import ResolvePlaybackUseCase, StreamMediaUseCase
from vidrelay.domain.entities.media import Provider
from vidrelay.infrastructure.backend import HttpxPlaybackBackend
from vidrelay.infrastructure.common import RetryPolicy, create_http_client
from vidrelay.infrastructure.config.schema import AppConfig
from vidrelay.infrastructure.detection import detect_source
from vidrelay.infrastructure.resolvers import (
    DirectResolver,
    GoogleDriveResolver,
    SoupInterstitialParser,
    StreamResolverRegistry,
    VidmolyResolver,
)
from vidrelay.infrastructure.streaming import StreamForwarder
from vidrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def _build_registry(
    state: AppState, config: AppConfig, forwarder: StreamForwarder
) -> StreamResolverRegistry:
    resolver_cfg = config.resolver
    return StreamResolverRegistry(
        [
            GoogleDriveResolver(
                state.http_client,
                config=resolver_cfg,
                user_agent=config.http_user_agent,
                api_key=config.gdrive_api_key,
                retry_policy=RetryPolicy.from_config(resolver_cfg),
                parser=SoupInterstitialParser(),
            ),
            VidmolyResolver(
                state.http_client,
                config=resolver_cfg,
                user_agent=config.http_user_agent,
            ),
            DirectResolver(forwarder, provider=Provider.DIRECT),
            DirectResolver(forwarder, provider=Provider.HLS),
        ]
    )


def wire_state(state: AppState) -> None:
    """Build every collaborator from ``state.config`` and ``state.http_client``."""
    config = state.config

    state.forwarder = StreamForwarder(
        state.http_client,
        user_agent=config.http_user_agent,
        chunk_size=config.resolver.chunk_size,
        timeout_seconds=config.resolver.media_timeout_seconds,
    )
    state.resolver_registry = _build_registry(state, config, state.forwarder)
    log.info(
        "stream_resolvers_initialized",
        providers=state.resolver_registry.supported_providers,
        gdrive_api_key=bool(config.gdrive_api_key),
    )

    state.playback_backend = None
    if config.proxy_service_url:
        state.playback_backend = HttpxPlaybackBackend(
            state.http_client,
            service_url=config.proxy_service_url,
            timeout_seconds=config.resolver.api_timeout_seconds,
        )
        log.info("playback_backend_configured")

    state.resolve_playback_uc = ResolvePlaybackUseCase(
        detect=detect_source,
        stream_path=config.stream_path,
        backend=state.playback_backend,
    )
    state.stream_media_uc = StreamMediaUseCase(
        resolvers=state.resolver_registry,
        forwarder=state.forwarder,
        backend=state.playback_backend,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: initialize and clean up all resources.

    Order matters:
        1. HTTP client (shared by resolvers, forwarder and backend)
        2. Forwarder + resolver registry
        3. Optional playback backend
        4. Use cases
    """
    state = cast(AppState, app.state)
    config = state.config

    state.http_client = create_http_client(config)
    log.info(
        "http_client_initialized",
        timeout_seconds=config.http_timeout_seconds,
        max_retries=config.resolver.max_retries,
    )

    wire_state(state)
    log.info("app_startup_complete")

    try:
        yield
    finally:
        await state.http_client.aclose()
        log.info("http_client_closed")

        log.info("app_shutdown_complete")
