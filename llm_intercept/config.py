"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import DEFAULT_CORRELATION_PROVIDERS, InterceptConfig, ProxyConfig

CONFIG_FILENAMES = [
    "llm-intercept.yaml",
    "llm-intercept.yml",
    "llm-intercept.json",
]


def _search_dirs(start: Path) -> list[Path]:
    """*start* and its ancestors, stopping at the home directory."""
    home = Path.home()
    dirs = [start]
    for parent in start.parents:
        if dirs[-1] == home:
            break
        dirs.append(parent)
    return dirs


def _discover_config() -> Path | None:
    """Nearest llm-intercept config file from the CWD upwards."""
    for directory in _search_dirs(Path.cwd()):
        found = next(
            (directory / name for name in CONFIG_FILENAMES if (directory / name).is_file()),
            None,
        )
        if found is not None:
            return found
    return None


def _read_raw(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML config file into a mapping (empty file = {})."""
    text = path.read_text()
    raw = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(raw).__name__}")
    return raw


def _build_config(raw: dict[str, Any]) -> InterceptConfig:
    """Build an InterceptConfig from a raw dict."""
    proxy_raw = raw.get("proxy", {}) or {}
    proxy = ProxyConfig(
        upstream=proxy_raw.get("upstream", ""),
        host=proxy_raw.get("host", "127.0.0.1"),
        port=int(proxy_raw.get("port", 5757)),
        timeout=float(proxy_raw.get("timeout", 120.0)),
    )

    providers = raw.get("correlation_providers", list(DEFAULT_CORRELATION_PROVIDERS))
    if isinstance(providers, str):
        providers = [providers]

    return InterceptConfig(
        enabled=bool(raw.get("enabled", True)),
        debug=bool(raw.get("debug", False)),
        plugin_name=raw.get("plugin_name", "llm-intercept"),
        log_dir=raw.get("log_dir", "") or "",
        transcript_limit=int(raw.get("transcript_limit", 100)),
        correlation_providers=list(providers),
        session_api=raw.get("session_api", "") or "",
        proxy=proxy,
    )


def validate_config(config: InterceptConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    if config.transcript_limit < 1:
        errors.append("transcript_limit must be >= 1")

    if not config.plugin_name:
        errors.append("plugin_name must not be empty")

    if not 0 < config.proxy.port < 65536:
        errors.append(f"proxy.port ({config.proxy.port}) must be between 1 and 65535")

    if config.proxy.timeout <= 0:
        errors.append("proxy.timeout must be > 0")

    for url_field, value in (("session_api", config.session_api), ("proxy.upstream", config.proxy.upstream)):
        if value and not value.startswith(("http://", "https://")):
            errors.append(f"{url_field} must be an http(s) URL, got '{value}'")

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> InterceptConfig:
    """Build the config from *config_dict*, *config_path*, or a discovered file.

    An explicit *config_path* must exist.  With neither argument and no file
    found, every key takes its default.
    """
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is None:
        discovered = _discover_config()
        return _build_config(_read_raw(discovered) if discovered else {})

    path = Path(config_path).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    return _build_config(_read_raw(path))
