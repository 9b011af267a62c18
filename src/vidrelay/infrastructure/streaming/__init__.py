from vidrelay.infrastructure.streaming.forwarder import (
    CORS_HEADERS,
    NO_CACHE_HEADERS,
    StreamForwarder,
    build_forward_headers,
    stream_from_response,
)

__all__ = [
    "CORS_HEADERS",
    "NO_CACHE_HEADERS",
    "StreamForwarder",
    "build_forward_headers",
    "stream_from_response",
]
