"""Tests for the playback proxy router."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import respx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vidrelay.application.use_cases import StreamMediaUseCase
from vidrelay.domain.entities.media import ResolutionFailure, ResolvedStream
from vidrelay.infrastructure.config.schema import AppConfig
from vidrelay.infrastructure.resolvers import (
    GoogleDriveResolver,
    StreamResolverRegistry,
)
from vidrelay.interfaces.api.proxy.router import (
    ClientDisconnected,
    _until_disconnect,
    router,
)

_DRIVE_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz012345"


def _make_app(
    *,
    resolve_playback_uc: AsyncMock | None = None,
    stream_media_uc: AsyncMock | None = None,
    environment: str = "test",
) -> FastAPI:
    """Create a minimal FastAPI app with the proxy router."""
    app = FastAPI()
    app.include_router(router)

    app.state.config = AppConfig(environment=environment)
    app.state.resolve_playback_uc = resolve_playback_uc or AsyncMock()
    app.state.stream_media_uc = stream_media_uc or AsyncMock()
    return app


def _uc(return_value: object = None, side_effect: object = None) -> AsyncMock:
    uc = AsyncMock()
    uc.execute = AsyncMock(return_value=return_value, side_effect=side_effect)
    return uc


# ---------------------------------------------------------------------------
# OPTIONS
# ---------------------------------------------------------------------------


class TestPreflight:
    def test_cors_preflight(self) -> None:
        client = TestClient(_make_app())
        resp = client.options("/api/proxy")
        assert resp.status_code == 204
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "Range" in resp.headers["access-control-allow-headers"]


# ---------------------------------------------------------------------------
# POST (resolve)
# ---------------------------------------------------------------------------


class TestResolveEndpoint:
    def test_returns_playback_url(self) -> None:
        uc = _uc("/api/proxy?stream=1&provider=vidmoly&identifier=abc")
        client = TestClient(_make_app(resolve_playback_uc=uc))

        resp = client.post(
            "/api/proxy", json={"source": "https://vidmoly.me/abc", "provider": None}
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "playbackUrl": "/api/proxy?stream=1&provider=vidmoly&identifier=abc"
        }
        assert resp.headers["access-control-allow-origin"] == "*"
        uc.execute.assert_awaited_once_with(
            source="https://vidmoly.me/abc", provider=None, identifier=None
        )

    def test_query_parameters_fallback(self) -> None:
        uc = _uc("https://cdn.example.com/a.mp4")
        client = TestClient(_make_app(resolve_playback_uc=uc))

        resp = client.post(
            "/api/proxy",
            params={"source": "https://cdn.example.com/a.mp4", "identifier": "q"},
        )

        assert resp.status_code == 200
        uc.execute.assert_awaited_once_with(
            source="https://cdn.example.com/a.mp4", provider=None, identifier="q"
        )

    def test_body_wins_over_query(self) -> None:
        uc = _uc("x")
        client = TestClient(_make_app(resolve_playback_uc=uc))

        client.post("/api/proxy?source=from-query", json={"source": "from-body"})

        assert uc.execute.await_args.kwargs["source"] == "from-body"

    def test_invalid_json_ignored(self) -> None:
        uc = _uc("x")
        client = TestClient(_make_app(resolve_playback_uc=uc))

        resp = client.post(
            "/api/proxy?source=s",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status_code == 200
        assert uc.execute.await_args.kwargs["source"] == "s"

    def test_failure_rendered_as_json(self) -> None:
        failure = ResolutionFailure(
            kind="invalid-input",
            message="Unsupported source link.",
            http_status=400,
        )
        client = TestClient(_make_app(resolve_playback_uc=_uc(failure)))

        resp = client.post("/api/proxy", json={"source": "nope"})

        assert resp.status_code == 400
        assert resp.json() == {"message": "Unsupported source link."}
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_failure_details_included(self) -> None:
        failure = ResolutionFailure(
            kind="backend-error", message="down", details="body", http_status=503
        )
        client = TestClient(_make_app(resolve_playback_uc=_uc(failure)))

        resp = client.post("/api/proxy", json={"source": "s"})

        assert resp.status_code == 503
        assert resp.json() == {"message": "down", "details": "body"}

    def test_unexpected_error_is_500_with_details(self) -> None:
        uc = _uc(side_effect=RuntimeError("kaboom"))
        client = TestClient(_make_app(resolve_playback_uc=uc))

        resp = client.post("/api/proxy", json={"source": "s"})

        assert resp.status_code == 500
        assert resp.json() == {"message": "Internal server error.", "details": "kaboom"}

    def test_unexpected_error_hides_details_in_prod(self) -> None:
        uc = _uc(side_effect=RuntimeError("kaboom"))
        client = TestClient(_make_app(resolve_playback_uc=uc, environment="prod"))

        resp = client.post("/api/proxy", json={"source": "s"})

        assert resp.status_code == 500
        assert "details" not in resp.json()


# ---------------------------------------------------------------------------
# GET (stream)
# ---------------------------------------------------------------------------


class TestStreamEndpoint:
    def test_streams_body_with_headers(self, make_stream) -> None:
        stream = make_stream(
            b"0123456789",
            status_code=206,
            headers={
                "content-type": "video/mp4",
                "content-range": "bytes 0-9/100",
                "Access-Control-Allow-Origin": "*",
            },
        )
        uc = _uc(stream)
        client = TestClient(_make_app(stream_media_uc=uc))

        resp = client.get(
            "/api/proxy",
            params={"stream": "1", "provider": "vidmoly", "identifier": "abc"},
            headers={"Range": "bytes=0-9"},
        )

        assert resp.status_code == 206
        assert resp.content == b"0123456789"
        assert resp.headers["content-type"] == "video/mp4"
        assert resp.headers["content-range"] == "bytes 0-9/100"
        uc.execute.assert_awaited_once_with(
            stream="1",
            provider="vidmoly",
            identifier="abc",
            source=None,
            range_header="bytes=0-9",
        )
        stream.close.assert_awaited_once()

    def test_failure_rendered_as_json(self) -> None:
        failure = ResolutionFailure(
            kind="google-drive-failed-all-attempts",
            message="All attempts to fetch the Google Drive file failed.",
            details="Could not access the Google Drive file.",
            http_status=502,
        )
        client = TestClient(_make_app(stream_media_uc=_uc(failure)))

        resp = client.get(
            "/api/proxy",
            params={"stream": "1", "provider": "google-drive", "identifier": "x"},
        )

        assert resp.status_code == 502
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["details"] == "Could not access the Google Drive file."

    def test_unexpected_error_is_500(self) -> None:
        uc = _uc(side_effect=ValueError("bad"))
        client = TestClient(_make_app(stream_media_uc=uc))

        resp = client.get("/api/proxy", params={"stream": "1"})

        assert resp.status_code == 500
        assert resp.json()["message"] == "Internal server error."


# ---------------------------------------------------------------------------
# Client disconnects
# ---------------------------------------------------------------------------


def _fast_disconnect_poll():
    return patch("vidrelay.interfaces.api.proxy.router.DISCONNECT_POLL_SECONDS", 0.01)


def _http_scope(method: str, query: str) -> dict[str, Any]:
    # ASGI 2.0 scope: StreamingResponse listens for http.disconnect itself.
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": "/api/proxy",
        "raw_path": b"/api/proxy",
        "root_path": "",
        "query_string": query.encode(),
        "headers": [],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }


class _Recorder:
    """ASGI ``send`` collecting every message."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def status(self) -> int:
        return self.messages[0]["status"]


class TestClientDisconnect:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_disconnect_during_backoff_cancels_resolution(
        self, http_client, resolver_config
    ) -> None:
        final = f"https://drive.usercontent.google.com/download?id={_DRIVE_ID}"
        respx.get(url__regex=r"^https://drive\.google\.com/uc\?").respond(
            302, headers={"Location": final}
        )
        upstream = respx.get(final).respond(503)

        sleeping = asyncio.Event()
        sleep_cancelled = asyncio.Event()

        async def _backoff_forever(delay: float) -> None:
            sleeping.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                sleep_cancelled.set()
                raise

        async def receive() -> dict[str, Any]:
            if sleeping.is_set():
                return {"type": "http.disconnect"}
            return {"type": "http.request", "body": b"", "more_body": False}

        resolver = GoogleDriveResolver(
            http_client, config=resolver_config, user_agent="TestAgent/1.0"
        )
        uc = StreamMediaUseCase(
            resolvers=StreamResolverRegistry([resolver]), forwarder=MagicMock()
        )
        app = _make_app(stream_media_uc=uc)
        send = _Recorder()
        scope = _http_scope(
            "GET", f"stream=1&provider=google-drive&identifier={_DRIVE_ID}"
        )

        with (
            patch("vidrelay.infrastructure.common.retry.asyncio") as m,
            _fast_disconnect_poll(),
        ):
            m.sleep = AsyncMock(side_effect=_backoff_forever)
            await asyncio.wait_for(app(scope, receive, send), timeout=5)

        assert sleep_cancelled.is_set()
        assert upstream.call_count == 1
        assert send.status == 499

    @pytest.mark.asyncio()
    async def test_stream_produced_after_disconnect_is_closed(
        self, make_stream
    ) -> None:
        stream = make_stream(b"late")

        async def _resolve_ignoring_cancel() -> ResolvedStream:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                pass
            return stream

        request = MagicMock()
        request.method = "GET"
        request.is_disconnected = AsyncMock(return_value=True)

        with (
            _fast_disconnect_poll(),
            pytest.raises(ClientDisconnected),
        ):
            await _until_disconnect(request, _resolve_ignoring_cancel())

        stream.close.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_result_returned_while_client_connected(self) -> None:
        async def _resolve() -> str:
            await asyncio.sleep(0.03)
            return "https://cdn.example.com/a.mp4"

        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=False)

        with _fast_disconnect_poll():
            result = await _until_disconnect(request, _resolve())

        assert result == "https://cdn.example.com/a.mp4"
        assert request.is_disconnected.await_count >= 1

    @pytest.mark.asyncio()
    async def test_disconnect_mid_stream_closes_upstream(self) -> None:
        first_chunk_sent = asyncio.Event()

        async def _endless() -> AsyncIterator[bytes]:
            yield b"first"
            await asyncio.Event().wait()
            yield b"never"

        stream = ResolvedStream(
            status_code=200,
            headers={"content-type": "video/mp4"},
            body=_endless(),
            close=AsyncMock(),
        )
        app = _make_app(stream_media_uc=_uc(stream))
        send = _Recorder()

        async def receive() -> dict[str, Any]:
            await first_chunk_sent.wait()
            return {"type": "http.disconnect"}

        async def recording_send(message: dict[str, Any]) -> None:
            await send(message)
            if message.get("body") == b"first":
                first_chunk_sent.set()

        scope = _http_scope("GET", "stream=1&provider=direct&identifier=x")
        await asyncio.wait_for(app(scope, receive, recording_send), timeout=5)

        assert send.status == 200
        assert [m.get("body") for m in send.messages[1:]] == [b"first"]
        stream.close.assert_awaited_once()
