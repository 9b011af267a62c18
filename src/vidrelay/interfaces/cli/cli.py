"""``vidrelay`` console entry point: parse flags, load config, run uvicorn."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from vidrelay.infrastructure.config import load_config
from vidrelay.infrastructure.logging.setup import configure_logging
from vidrelay.interfaces.app import create_app

log = structlog.get_logger(__name__)

_DEFAULT_HOST = "0.0.0.0"
_DEFAULT_PORT = 3000

# argparse destinations that map 1:1 onto flat config keys.
_CONFIG_FLAGS = ("proxy_service_url", "log_level", "log_format")


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vidrelay",
        description="Video source resolution and streaming proxy.",
    )

    bind = parser.add_argument_group("bind address")
    bind.add_argument("--host", help=f"defaults to $HOST, then {_DEFAULT_HOST}")
    bind.add_argument(
        "--port", type=int, help=f"defaults to $PORT, then {_DEFAULT_PORT}"
    )

    cfg = parser.add_argument_group("configuration")
    cfg.add_argument("--config", type=Path, help="YAML config file")
    cfg.add_argument(
        "--dotenv", type=Path, help="dotenv file feeding VIDRELAY_* variables"
    )
    cfg.add_argument("--proxy-service-url", help="external playback backend URL")
    cfg.add_argument("--log-level", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    cfg.add_argument("--log-format", choices=("json", "console"))

    return parser.parse_args(argv)


def build_cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Flat config overrides for the flags that were actually given."""
    given = {name: getattr(args, name) for name in _CONFIG_FLAGS}
    return {name: value for name, value in given.items() if value}


def _bind_address(args: argparse.Namespace) -> tuple[str, int]:
    host = args.host or os.getenv("HOST", _DEFAULT_HOST)
    port = args.port or int(os.getenv("PORT", str(_DEFAULT_PORT)))
    return host, port


def start(argv: Iterable[str] | None = None) -> None:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    host, port = _bind_address(args)

    config = load_config(
        config_path=args.config,
        dotenv_path=args.dotenv,
        cli_overrides=build_cli_overrides(args),
    )
    log_config = configure_logging(config)
    log.info("server_starting", host=host, port=port, environment=config.environment)

    uvicorn.run(create_app(config), host=host, port=port, log_config=log_config)


if __name__ == "__main__":
    start()
