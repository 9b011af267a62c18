"""FastAPI application factory.

``create_app`` only wires configuration and routes; the HTTP client,
resolvers and use cases are built by the lifespan in ``composition``.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from starlette.responses import Response

from vidrelay.infrastructure.config import AppConfig
from vidrelay.interfaces.api.proxy import router as proxy_router
from vidrelay.interfaces.app_state import AppState
from vidrelay.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


async def _log_request(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
            client_host=request.client.host if request.client else None,
        )


async def healthz(request: Request) -> dict[str, str | list[str]]:
    """Liveness plus the providers resolved in-process."""
    registry = getattr(request.app.state, "resolver_registry", None)
    return {
        "status": "ok",
        "providers": registry.supported_providers if registry else [],
    }


def create_app(config: AppConfig) -> FastAPI:
    app = FastAPI(
        title="vidrelay",
        description="Video source resolution and streaming proxy",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state = AppState()
    app.state.config = config

    app.include_router(proxy_router)
    app.add_api_route("/api/v1/healthz", healthz, methods=["GET"])
    app.middleware("http")(_log_request)
    return app
