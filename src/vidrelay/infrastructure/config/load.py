"""Layered configuration: defaults < YAML file < environment < CLI."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

_SECTIONS = frozenset({"http", "logging", "backend", "resolver"})
_TOP_LEVEL = ("app_name", "environment")

# Flat keys used by env vars and CLI flags, with the section field they set.
_FLAT_FIELDS: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_user_agent": ("http", "user_agent"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "gdrive_api_key": ("backend", "gdrive_api_key"),
    "proxy_service_url": ("backend", "proxy_service_url"),
    "stream_path": ("backend", "stream_path"),
}
_RESOLVER_PREFIX = "resolver_"


def _sectioned(layer: Mapping[str, Any]) -> dict[str, Any]:
    """Fold a layer's flat keys into sections; flat keys beat nested ones."""
    out: dict[str, Any] = {key: layer[key] for key in _TOP_LEVEL if key in layer}

    for section in _SECTIONS.intersection(layer):
        if isinstance(layer[section], Mapping):
            out[section] = dict(layer[section])

    for key, value in layer.items():
        if key in _FLAT_FIELDS:
            section, field = _FLAT_FIELDS[key]
            out.setdefault(section, {})[field] = value
        elif key.startswith(_RESOLVER_PREFIX):
            out.setdefault("resolver", {})[key[len(_RESOLVER_PREFIX) :]] = value
    return out


def _merge_into(target: dict[str, Any], layer: Mapping[str, Any]) -> None:
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _merge_into(current, value)
        else:
            target[key] = value


def _yaml_layer(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Build the effective ``AppConfig``; later layers win.

    A dotenv file only fills ``VIDRELAY_*`` variables that are not already
    set, so it ranks with the environment layer.  Nothing is written to disk.
    """
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    layers: list[Mapping[str, Any]] = [deepcopy(DEFAULT_CONFIG)]
    if config_path is not None:
        layers.append(_yaml_layer(config_path))
    layers.append(EnvOverrides().to_update_dict())
    layers.append(cli_overrides or {})

    merged: dict[str, Any] = {}
    for layer in layers:
        _merge_into(merged, _sectioned(layer))
    return AppConfig.model_validate(merged)
