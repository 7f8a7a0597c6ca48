# src/metroranta/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/metroranta/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `METRORANTA_CONFIG_PATH`
- a few environment variables (cache dir, log level, route/store paths, Overpass URL)

Tuning knobs (radius, buffer, TTLs, retry, flag threshold) live in YAML, not in code.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from metroranta.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `metroranta.config`."""
    text = resources.files("metroranta.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Metroranta"
    http_timeout_seconds: float = 30
    log_level: str = "INFO"


class CacheSettings(BaseModel):
    enabled: bool = True
    dir: str = ".cache/metroranta"
    default_ttl_seconds: int = 60 * 60 * 24


class RouteSettings(BaseModel):
    path: str = "data/routes/route-data.json"


class ProximitySettings(BaseModel):
    max_distance_m: float = Field(100, gt=0)
    buffer_m: float = Field(100, ge=0)
    # Above this gap between track points, vertex distance stops approximating segment distance.
    sparse_segment_warning_m: float = Field(50, gt=0)


class RetrySettings(BaseModel):
    max_attempts: int = Field(2, ge=0)
    base_delay_seconds: float = Field(2.0, ge=0)
    max_delay_seconds: float = Field(30.0, ge=0)


class OverpassSettings(BaseModel):
    base_url: str = "https://overpass-api.de/api/interpreter"
    query_timeout_seconds: int = Field(25, ge=1)
    cache_ttl_seconds: int = 60 * 60 * 24
    request_spacing_seconds: float = Field(2.0, ge=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)


class IngestionSettings(BaseModel):
    overpass: OverpassSettings = Field(default_factory=OverpassSettings)


class StorageSettings(BaseModel):
    path: str = "data/store/suggestions.json"
    flag_archive_threshold: int = Field(3, ge=1)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    route: RouteSettings = Field(default_factory=RouteSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay a small whitelist of environment variables onto the raw payload."""
    load_dotenv_if_present()
    data = dict(data)

    cache_dir = os.getenv("METRORANTA_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    log_level = os.getenv("METRORANTA_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    route_path = os.getenv("METRORANTA_ROUTE_PATH")
    if route_path:
        data.setdefault("route", {})["path"] = route_path

    store_path = os.getenv("METRORANTA_STORE_PATH")
    if store_path:
        data.setdefault("storage", {})["path"] = store_path

    overpass_url = os.getenv("OVERPASS_URL")
    if overpass_url:
        data.setdefault("ingestion", {}).setdefault("overpass", {})["base_url"] = overpass_url

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("METRORANTA_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
