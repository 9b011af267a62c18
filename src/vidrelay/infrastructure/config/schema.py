"""Validated configuration models and the environment override layer."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]

DEFAULT_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


def _flat_or_nested(flat: str, section: str, key: str) -> AliasChoices:
    # Accept "log_level" as well as {"logging": {"level": ...}}.
    return AliasChoices(flat, AliasPath(section, key))


class ResolverConfig(BaseModel):
    """Retry, backoff and timeout knobs shared by every resolver."""

    max_retries: int = Field(
        default=6,
        description="Attempts per URL before the fetch loop gives up.",
    )
    default_retry_delay_seconds: float = Field(
        default=5.0,
        description="Backoff when a 429/5xx response carries no Retry-After.",
    )
    max_retry_delay_seconds: float = Field(
        default=60.0,
        description="Upper bound applied to Retry-After values.",
    )
    form_submit_delay_seconds: float = Field(
        default=1.0,
        description="Pause before POSTing a confirmation form.",
    )
    max_redirect_depth: int = Field(
        default=3,
        description="Max nested resolutions when redirected to another viewer URL.",
    )
    page_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for provider page scrapes.",
    )
    api_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for lookup/metadata API calls.",
    )
    media_timeout_seconds: float = Field(
        default=30.0,
        description="Connect/read timeout for media fetches.",
    )
    metadata_probe_enabled: bool = Field(
        default=True,
        description="Probe file metadata for a direct content link.",
    )
    chunk_size: int = Field(
        default=65536,
        description="Chunk size (bytes) used when forwarding media bodies.",
    )

    @field_validator("max_retries", "max_redirect_depth")
    @classmethod
    def _validate_counts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry/depth counts must be >= 0")
        return v

    @field_validator(
        "page_timeout_seconds",
        "api_timeout_seconds",
        "media_timeout_seconds",
        "chunk_size",
    )
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts and chunk size must be > 0")
        return v

    @field_validator(
        "default_retry_delay_seconds",
        "max_retry_delay_seconds",
        "form_submit_delay_seconds",
    )
    @classmethod
    def _validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v


class AppConfig(BaseModel):
    """Effective settings after every layer has been merged.

    Input is sectioned (``http``, ``logging``, ``backend``, ``resolver``);
    the flat attribute names are what the rest of the code reads.
    """


    app_name: str = Field(default="vidrelay", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # http:
    http_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=_flat_or_nested(
            "http_timeout_seconds", "http", "timeout_seconds"
        ),
        description="Default timeout for the shared HTTP client.",
    )
    http_user_agent: str = Field(
        default=DEFAULT_BROWSER_UA,
        validation_alias=_flat_or_nested("http_user_agent", "http", "user_agent"),
        description="Browser User-Agent presented to upstream hosts.",
    )

    # logging:
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=_flat_or_nested("log_level", "logging", "level"),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=_flat_or_nested("log_format", "logging", "format"),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    # backend:
    gdrive_api_key: str | None = Field(
        default=None,
        validation_alias=_flat_or_nested(
            "gdrive_api_key", "backend", "gdrive_api_key"
        ),
        description="Google Drive API key; unlocks the authenticated download approach.",
    )
    proxy_service_url: str | None = Field(
        default=None,
        validation_alias=_flat_or_nested(
            "proxy_service_url", "backend", "proxy_service_url"
        ),
        description="External playback backend for providers without a resolver.",
    )
    stream_path: str = Field(
        default="/api/proxy",
        validation_alias=_flat_or_nested("stream_path", "backend", "stream_path"),
        description="Public path of the stream endpoint used in playback URLs.",
    )

    # resolver:
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("gdrive_api_key", "proxy_service_url", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """Sectioned view for display, with the Drive API key masked."""
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "backend": {
                "gdrive_api_key": "***" if self.gdrive_api_key else None,
                "proxy_service_url": self.proxy_service_url,
                "stream_path": self.stream_path,
            },
            "resolver": self.resolver.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """``VIDRELAY_*`` variables, flat and optional; unset ones are dropped."""

    model_config = SettingsConfigDict(
        env_prefix="VIDRELAY_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    gdrive_api_key: Optional[str] = None
    proxy_service_url: Optional[str] = None
    stream_path: Optional[str] = None

    resolver_max_retries: Optional[int] = None
    resolver_default_retry_delay_seconds: Optional[float] = None
    resolver_max_redirect_depth: Optional[int] = None
    resolver_metadata_probe_enabled: Optional[bool] = None

    def to_update_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
