"""Shared test fixtures for the vidrelay test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import httpx
import pytest

from vidrelay.domain.entities.media import ResolvedStream
from vidrelay.infrastructure.common.http import refusing_cookie_jar
from vidrelay.infrastructure.config.schema import AppConfig, ResolverConfig

# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def resolver_config() -> ResolverConfig:
    """Resolver knobs with the form delay disabled and the probe off."""
    return ResolverConfig(
        form_submit_delay_seconds=0,
        metadata_probe_enabled=False,
        chunk_size=4,
    )


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig(
        environment="test",
        resolver=ResolverConfig(form_submit_delay_seconds=0),
    )


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Cookie-isolated client, same as production, for use with respx."""
    client = httpx.AsyncClient(cookies=refusing_cookie_jar())
    yield client
    await client.aclose()


# ---------------------------------------------------------------------------
# Stream helpers
# ---------------------------------------------------------------------------


def _make_stream(
    body: bytes = b"data",
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> ResolvedStream:
    """In-memory ResolvedStream with an AsyncMock close."""

    async def _iter() -> AsyncIterator[bytes]:
        yield body

    return ResolvedStream(
        status_code=status_code,
        headers=headers if headers is not None else {"content-type": "video/mp4"},
        body=_iter(),
        close=AsyncMock(),
    )


async def _drain(stream: ResolvedStream) -> bytes:
    chunks = [chunk async for chunk in stream.body]
    return b"".join(chunks)


@pytest.fixture()
def make_stream():
    """Factory for in-memory ResolvedStream objects."""
    return _make_stream


@pytest.fixture()
def drain():
    """Coroutine function collecting a stream body into bytes."""
    return _drain
