"""Domain entities for source resolution and media streaming.

Pure value objects and error types; no framework dependencies and no I/O.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_RANGE = "bytes=0-"

# Drive file ids are runs of 20 or more url-safe characters.
DRIVE_ID_RE = re.compile(r"[\w-]{20,}")


def extract_drive_id(text: str | None) -> str | None:
    """First Drive file id in *text*, or ``None``."""
    m = DRIVE_ID_RE.search(text or "")
    return m.group(0) if m else None


class Provider(str, Enum):
    """Third-party platform hosting a source video (wire values are stable)."""

    GOOGLE_DRIVE = "google-drive"  # quota-gated host
    VIDMOLY = "vidmoly"  # generic scrape-then-API host
    VOE = "voe"
    DIRECT = "direct"
    HLS = "hls"
    STREAMTAPE = "streamtape"
    DOOD = "dood"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> Provider | None:
        """Map a wire value to a provider, ``None`` for unknown strings."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class SourceReference:
    """A classified user-supplied video reference."""

    provider: Provider
    identifier: str
    original: str


@dataclass(frozen=True)
class ResolutionApproach:
    """One entry of a download cascade."""

    name: str
    url: str
    uses_authenticated_api: bool = False


async def _noop_close() -> None:
    return None


@dataclass
class ResolvedStream:
    """An upstream media response ready to be forwarded.

    ``body`` is a lazy single-pass byte iterator.  Whoever consumes it
    owns the upstream connection and must call ``aclose()`` when done
    (drained, cancelled or failed).
    """

    status_code: int
    headers: dict[str, str]
    body: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]] = field(default=_noop_close)

    async def aclose(self) -> None:
        await self.close()


@dataclass(frozen=True)
class ResolutionFailure:
    """Structured, user-facing outcome of a failed resolution."""

    kind: str
    message: str
    details: str | None = None
    http_status: int = 502

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ResolutionError(Exception):
    """Base error for source detection and provider resolution."""

    default_kind = "resolution-error"
    default_status = 502

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        details: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.details = details
        self.http_status = http_status or self.default_status

    def to_failure(self) -> ResolutionFailure:
        return ResolutionFailure(
            kind=self.kind,
            message=self.message,
            details=self.details,
            http_status=self.http_status,
        )


class InputError(ResolutionError):
    """Unparseable or unsupported source input."""

    default_kind = "invalid-input"
    default_status = 400


class ProviderUnsupported(ResolutionError):
    """No built-in resolver and no external backend configured."""

    default_kind = "provider-unsupported"
    default_status = 501


class UpstreamUnavailable(ResolutionError):
    """Upstream fetch failed terminally or every approach was exhausted."""

    default_kind = "upstream-unavailable"
    default_status = 502


class UpstreamRateLimited(UpstreamUnavailable):
    """Upstream kept answering 429/5xx until the retry budget ran out."""

    default_kind = "upstream-rate-limited"
