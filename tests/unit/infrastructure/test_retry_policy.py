"""Tests for RetryPolicy and Retry-After parsing."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from vidrelay.infrastructure.common.retry import (
    RetryPolicy,
    is_retryable_status,
    parse_retry_after,
)
from vidrelay.infrastructure.config.schema import ResolverConfig

_URL = "https://upstream.example.com/file"


def _response(status: int, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(
        status, headers=headers or {}, request=httpx.Request("GET", _URL)
    )


# ---------------------------------------------------------------------------
# parse_retry_after
# ---------------------------------------------------------------------------


class TestParseRetryAfter:
    def test_integer_seconds(self) -> None:
        assert parse_retry_after(httpx.Headers({"Retry-After": "2"})) == 2.0

    def test_float_seconds(self) -> None:
        assert parse_retry_after(httpx.Headers({"Retry-After": "1.5"})) == 1.5

    def test_missing(self) -> None:
        assert parse_retry_after(httpx.Headers()) is None

    def test_http_date_ignored(self) -> None:
        headers = httpx.Headers({"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        assert parse_retry_after(headers) is None

    def test_negative_ignored(self) -> None:
        assert parse_retry_after(httpx.Headers({"Retry-After": "-3"})) is None


class TestRetryableStatus:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504, 599])
    def test_retryable(self, status: int) -> None:
        assert is_retryable_status(status)

    @pytest.mark.parametrize("status", [200, 206, 302, 400, 403, 404])
    def test_not_retryable(self, status: int) -> None:
        assert not is_retryable_status(status)


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------


class TestRetryPolicy:
    def test_from_config(self) -> None:
        policy = RetryPolicy.from_config(
            ResolverConfig(
                max_retries=3,
                default_retry_delay_seconds=1,
                max_retry_delay_seconds=10,
            )
        )
        assert policy.max_retries == 3
        assert policy.delay_for(_response(429)) == 1
        assert policy.delay_for(_response(429, {"Retry-After": "30"})) == 10

    def test_delay_uses_retry_after(self) -> None:
        policy = RetryPolicy()
        assert policy.delay_for(_response(429, {"Retry-After": "2"})) == 2.0

    def test_delay_defaults_to_five_seconds(self) -> None:
        assert RetryPolicy().delay_for(_response(503)) == 5.0

    def test_delay_capped(self) -> None:
        policy = RetryPolicy(max_delay=60)
        assert policy.delay_for(_response(429, {"Retry-After": "3600"})) == 60

    def test_is_terminal(self) -> None:
        policy = RetryPolicy()
        assert policy.is_terminal(403)
        assert policy.is_terminal(404)
        assert not policy.is_terminal(200)
        assert not policy.is_terminal(302)
        assert not policy.is_terminal(429)

    @pytest.mark.asyncio()
    async def test_wait_sleeps_for_delay(self) -> None:
        with patch("vidrelay.infrastructure.common.retry.asyncio") as m:
            m.sleep = AsyncMock()
            delay = await RetryPolicy().wait(
                _response(429, {"Retry-After": "2"}), attempt=1
            )
        assert delay == 2.0
        m.sleep.assert_awaited_once_with(2.0)


class TestRetryPolicySend:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_retries_same_url_until_success(self) -> None:
        route = respx.get(_URL).mock(
            side_effect=[
                httpx.Response(429, headers={"Retry-After": "2"}),
                httpx.Response(200, content=b"ok"),
            ]
        )
        policy = RetryPolicy(max_retries=3)

        with patch("vidrelay.infrastructure.common.retry.asyncio") as m:
            m.sleep = AsyncMock()
            async with httpx.AsyncClient() as client:
                resp = await policy.send(
                    client, lambda: client.build_request("GET", _URL)
                )
                await resp.aclose()

        assert resp.status_code == 200
        assert route.call_count == 2
        m.sleep.assert_awaited_once_with(2.0)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_returns_last_response_when_exhausted(self) -> None:
        route = respx.get(_URL).respond(503)
        policy = RetryPolicy(max_retries=3, default_delay=0)

        with patch("vidrelay.infrastructure.common.retry.asyncio") as m:
            m.sleep = AsyncMock()
            async with httpx.AsyncClient() as client:
                resp = await policy.send(
                    client, lambda: client.build_request("GET", _URL)
                )
                await resp.aclose()

        assert resp.status_code == 503
        assert route.call_count == 3
        assert m.sleep.await_count == 2

    @respx.mock
    @pytest.mark.asyncio()
    async def test_terminal_status_not_retried(self) -> None:
        route = respx.get(_URL).respond(403)
        async with httpx.AsyncClient() as client:
            resp = await RetryPolicy().send(
                client, lambda: client.build_request("GET", _URL)
            )
            await resp.aclose()
        assert resp.status_code == 403
        assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio()
    async def test_request_rebuilt_per_attempt(self) -> None:
        respx.get(_URL).mock(
            side_effect=[httpx.Response(500), httpx.Response(200)]
        )
        built: list[int] = []

        with patch("vidrelay.infrastructure.common.retry.asyncio") as m:
            m.sleep = AsyncMock()
            async with httpx.AsyncClient() as client:

                def build() -> httpx.Request:
                    built.append(1)
                    return client.build_request("GET", _URL)

                resp = await RetryPolicy().send(client, build)
                await resp.aclose()

        assert len(built) == 2
