from vidrelay.infrastructure.common.cookies import CookieJar
from vidrelay.infrastructure.common.http import create_http_client
from vidrelay.infrastructure.common.retry import RetryPolicy, parse_retry_after

__all__ = ["CookieJar", "RetryPolicy", "create_http_client", "parse_retry_after"]
