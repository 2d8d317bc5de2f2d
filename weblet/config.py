"""Configuration for weblet services."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .cache import DEFAULT_GC_INTERVAL, DEFAULT_SIZE, DEFAULT_TTL

logger = logging.getLogger("weblet.config")

DEFAULT_TOKEN_TTL = 60
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

_ENV_PREFIX = "WEBLET_"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def _positive_float(value: Any, default: float) -> float:
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class Settings:
    """Runtime settings, every field has a documented default."""

    # Secret for session token MACs, never logged
    signing_key: Optional[str] = None
    token_ttl: int = DEFAULT_TOKEN_TTL
    cache_size: int = DEFAULT_SIZE
    cache_ttl: int = DEFAULT_TTL
    cache_gc_interval: float = DEFAULT_GC_INTERVAL
    secure_cookies: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def __repr__(self) -> str:
        key = "<set>" if self.signing_key else None
        return (
            f"Settings(signing_key={key!r}, token_ttl={self.token_ttl}, cache_size={self.cache_size}, "
            f"cache_ttl={self.cache_ttl}, cache_gc_interval={self.cache_gc_interval}, "
            f"secure_cookies={self.secure_cookies}, host={self.host!r}, port={self.port})"
        )

    @staticmethod
    def from_dict(data: Mapping[str, Any], base: Optional["Settings"] = None) -> "Settings":
        """Create :class:`Settings` from raw values, falling back to ``base`` for bad ones."""

        base = base or Settings()
        known = {field.name for field in fields(Settings)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown settings: %s", ", ".join(sorted(unknown)))

        values: Dict[str, Any] = {}
        if data.get("signing_key") is not None:
            key = str(data["signing_key"])
            values["signing_key"] = key or None
        if "token_ttl" in data:
            values["token_ttl"] = _positive_int(data["token_ttl"], base.token_ttl)
        if "cache_size" in data:
            values["cache_size"] = _positive_int(data["cache_size"], base.cache_size)
        if "cache_ttl" in data:
            values["cache_ttl"] = _positive_int(data["cache_ttl"], base.cache_ttl)
        if "cache_gc_interval" in data:
            values["cache_gc_interval"] = _positive_float(data["cache_gc_interval"], base.cache_gc_interval)
        if "secure_cookies" in data:
            raw = data["secure_cookies"]
            values["secure_cookies"] = raw if isinstance(raw, bool) else _env_flag(str(raw), base.secure_cookies)
        if data.get("host"):
            values["host"] = str(data["host"]).strip() or base.host
        if "port" in data:
            port = _positive_int(data["port"], base.port)
            values["port"] = port if port <= 65535 else base.port
        return replace(base, **values)


def _settings_from_env(environ: Mapping[str, str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for field in fields(Settings):
        raw = environ.get(_ENV_PREFIX + field.name.upper())
        if raw is not None:
            values[field.name] = raw
    return values


def load_settings_file(config_path: Path) -> Dict[str, Any]:
    """Read raw settings from a YAML file, optionally nested under ``weblet:``."""

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    nested = raw.get("weblet")
    if isinstance(nested, dict):
        return nested
    return raw


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def load_settings(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from an optional YAML file, then ``WEBLET_*`` environment variables.

    Environment variables win over the file. ``WEBLET_CONFIG`` names the file
    when ``path`` is not given.
    """

    environ = os.environ if environ is None else environ
    config_path = path or resolve_config_path(environ.get(_ENV_PREFIX + "CONFIG"))

    settings = Settings()
    if config_path is not None:
        settings = Settings.from_dict(load_settings_file(config_path), settings)
    return Settings.from_dict(_settings_from_env(environ), settings)


__all__ = ["Settings", "load_settings", "load_settings_file", "resolve_config_path"]
