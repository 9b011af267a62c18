"""Retry/backoff policy for transiently failing upstream calls."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import structlog

from vidrelay.infrastructure.config.schema import ResolverConfig

log = structlog.get_logger(__name__)


def parse_retry_after(headers: httpx.Headers) -> float | None:
    """Parse ``Retry-After`` header value (seconds only).

    Returns the delay in seconds, or ``None`` if the header is missing
    or unparseable.  HTTP-date values are treated as unparseable.
    """
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        value = float(raw)
    except (ValueError, TypeError):
        return None
    return value if value >= 0 else None


def is_retryable_status(status_code: int) -> bool:
    """429 and every 5xx are worth retrying against the same URL."""
    return status_code == 429 or 500 <= status_code < 600


class RetryPolicy:
    """Bounded retry with ``Retry-After``-aware fixed backoff.

    One policy instance is shared by all resolvers, but it holds no
    mutable state: every retry counter and sleep belongs to the calling
    coroutine, so concurrent requests never influence each other.
    """

    def __init__(
        self,
        *,
        max_retries: int = 6,
        default_delay: float = 5.0,
        max_delay: float = 60.0,
    ) -> None:
        self._max_retries = max_retries
        self._default_delay = default_delay
        self._max_delay = max_delay

    @classmethod
    def from_config(cls, config: ResolverConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            default_delay=config.default_retry_delay_seconds,
            max_delay=config.max_retry_delay_seconds,
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def is_retryable(self, status_code: int) -> bool:
        return is_retryable_status(status_code)

    def is_terminal(self, status_code: int) -> bool:
        """Non-2xx/3xx statuses that should move on to the next approach."""
        if 200 <= status_code < 400:
            return False
        return not self.is_retryable(status_code)

    def delay_for(self, response: httpx.Response) -> float:
        """Compute the wait before the next attempt."""
        retry_after = parse_retry_after(response.headers)
        if retry_after is None:
            return self._default_delay
        return min(retry_after, self._max_delay)

    async def wait(self, response: httpx.Response, *, attempt: int) -> float:
        """Sleep for the backoff derived from *response*; returns the delay."""
        delay = self.delay_for(response)
        log.info(
            "upstream_retry",
            url=str(response.request.url)[:120],
            status=response.status_code,
            attempt=attempt,
            delay=round(delay, 2),
        )
        await asyncio.sleep(delay)
        return delay

    async def send(
        self,
        client: httpx.AsyncClient,
        build_request: Callable[[], httpx.Request],
        *,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """Send a streamed request, retrying on 429/5xx.

        *build_request* is called once per attempt so that per-attempt
        values (cache busters, cookies) are fresh.  Retryable responses are
        closed before sleeping; the last response is returned unread even
        when it is still retryable, and the caller owns closing it.
        """
        attempts = max(1, self._max_retries)
        response: httpx.Response | None = None
        for attempt in range(1, attempts + 1):
            response = await client.send(
                build_request(), stream=True, follow_redirects=follow_redirects
            )
            if not self.is_retryable(response.status_code) or attempt == attempts:
                return response
            await response.aclose()
            await self.wait(response, attempt=attempt)

        # Unreachable, but satisfies type checker
        assert response is not None
        return response  # pragma: no cover
