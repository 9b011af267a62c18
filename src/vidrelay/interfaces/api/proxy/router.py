"""Playback proxy endpoints (resolve, stream, CORS preflight)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar, cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from vidrelay.domain.entities.media import ResolutionFailure, ResolvedStream
from vidrelay.infrastructure.streaming import CORS_HEADERS
from vidrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/proxy", tags=["proxy"])

T = TypeVar("T")

# Seconds between client-disconnect checks while a request is resolving.
DISCONNECT_POLL_SECONDS = 0.5

# nginx convention for "client closed request"; only ever seen in access logs.
_CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    """The client went away before the handler produced a response."""


class RelayResponse(StreamingResponse):
    """Streams a ``ResolvedStream`` and releases its upstream afterwards.

    The upstream is closed however the response ends: drained, client
    disconnect, or cancellation.
    """

    def __init__(self, stream: ResolvedStream) -> None:
        super().__init__(
            stream.body, status_code=stream.status_code, headers=stream.headers
        )
        self._stream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await asyncio.shield(self._stream.aclose())


async def _until_disconnect(request: Request, work: Awaitable[T]) -> T:
    """Await *work*, cancelling it as soon as the client disconnects.

    Raises ``ClientDisconnected`` in that case.  A stream the work
    produced anyway is closed.
    """
    task = asyncio.ensure_future(work)
    delivered = False
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                delivered = True
                return task.result()
            if await request.is_disconnected():
                log.info("proxy_client_disconnected", method=request.method)
                raise ClientDisconnected
    finally:
        if not delivered:
            task.cancel()
            leftover = (await asyncio.gather(task, return_exceptions=True))[0]
            if isinstance(leftover, ResolvedStream):
                await leftover.aclose()


def _failure_response(failure: ResolutionFailure) -> JSONResponse:
    return JSONResponse(
        status_code=failure.http_status,
        content=failure.to_payload(),
        headers=CORS_HEADERS,
    )


def _internal_error(state: AppState, exc: Exception) -> JSONResponse:
    content: dict[str, Any] = {"message": "Internal server error."}
    if state.config.environment != "prod":
        content["details"] = str(exc)
    return JSONResponse(status_code=500, content=content, headers=CORS_HEADERS)


async def _read_body(request: Request) -> dict[str, Any]:
    """JSON body is optional; query parameters are the fallback."""
    if not await request.body():
        return {}
    try:
        data = await request.json()
    except ValueError:
        log.debug("proxy_body_not_json")
        return {}
    return data if isinstance(data, dict) else {}


def _param(body: dict[str, Any], request: Request, name: str) -> str | None:
    value = body.get(name)
    if value is None:
        return request.query_params.get(name)
    return str(value)


@router.options("")
async def proxy_preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post("")
async def resolve_playback(request: Request) -> Response:
    """Classify a source and answer ``{"playbackUrl": ...}``."""
    state = cast(AppState, request.app.state)
    body = await _read_body(request)

    try:
        result = await _until_disconnect(
            request,
            state.resolve_playback_uc.execute(
                source=_param(body, request, "source"),
                provider=_param(body, request, "provider"),
                identifier=_param(body, request, "identifier"),
            ),
        )
    except ClientDisconnected:
        return Response(status_code=_CLIENT_CLOSED_REQUEST)
    except Exception as exc:
        log.exception("proxy_resolve_unexpected_error")
        return _internal_error(state, exc)

    if isinstance(result, ResolutionFailure):
        return _failure_response(result)
    return JSONResponse(content={"playbackUrl": result}, headers=CORS_HEADERS)


@router.get("")
async def stream_media(request: Request) -> Response:
    """Stream provider media, honouring the client's ``Range`` header."""
    state = cast(AppState, request.app.state)
    params = request.query_params

    try:
        result = await _until_disconnect(
            request,
            state.stream_media_uc.execute(
                stream=params.get("stream"),
                provider=params.get("provider"),
                identifier=params.get("identifier"),
                source=params.get("source"),
                range_header=request.headers.get("range"),
            ),
        )
    except ClientDisconnected:
        return Response(status_code=_CLIENT_CLOSED_REQUEST)
    except Exception as exc:
        log.exception("proxy_stream_unexpected_error")
        return _internal_error(state, exc)

    if isinstance(result, ResolutionFailure):
        return _failure_response(result)

    log.info(
        "proxy_stream_started",
        provider=params.get("provider"),
        status=result.status_code,
        content_type=result.headers.get("content-type"),
    )
    return RelayResponse(result)
