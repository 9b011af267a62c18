"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

from .schema import DEFAULT_BROWSER_UA

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "vidrelay",
    "environment": "dev",
    "http": {
        "timeout_seconds": 30.0,
        "user_agent": DEFAULT_BROWSER_UA,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "backend": {
        "gdrive_api_key": None,
        "proxy_service_url": None,
        "stream_path": "/api/proxy",
    },
    "resolver": {
        "max_retries": 6,
        "default_retry_delay_seconds": 5.0,
        "max_retry_delay_seconds": 60.0,
        "form_submit_delay_seconds": 1.0,
        "max_redirect_depth": 3,
        "page_timeout_seconds": 10.0,
        "api_timeout_seconds": 15.0,
        "media_timeout_seconds": 30.0,
        "metadata_probe_enabled": True,
        "chunk_size": 65536,
    },
}
