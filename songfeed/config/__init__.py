"""Configuration helpers for the scraped song info provider.

Settings are read from the ``scraped_info`` section of a YAML file and then
overridden by ``SONGFEED_*`` environment variables so deployments can adjust
cache location and fetch policy without editing the bundled defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from songfeed.core.errors import ConfigError


CONFIG_DIR = Path(__file__).resolve().parent
DEFAULT_SETTINGS_PATH = CONFIG_DIR / "scraped_info.yaml"
SETTINGS_SECTION = "scraped_info"

DEFAULT_MAX_AGE = timedelta(days=2)
DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "SongFeed/1.0"

FILE_PATH_ENV = "SONGFEED_SCRAPED_FILE"
SOURCE_URL_ENV = "SONGFEED_SOURCE_URL"
MAX_AGE_HOURS_ENV = "SONGFEED_MAX_AGE_HOURS"
ALLOW_WEB_FETCH_ENV = "SONGFEED_ALLOW_WEB_FETCH"
CACHE_TO_DISK_ENV = "SONGFEED_CACHE_TO_DISK"
TIMEOUT_ENV = "SONGFEED_TIMEOUT_SEC"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class RetryConfig:
    """Retry parameters for snapshot downloads."""

    max_attempts: int = 3
    backoff_ms: int = 500
    max_backoff_ms: int = 4000

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "RetryConfig":
        if not data:
            return cls()
        return cls(
            max_attempts=max(1, _as_int(data.get("max_attempts", 3), "retries.max_attempts")),
            backoff_ms=_as_int(data.get("backoff_ms", 500), "retries.backoff_ms"),
            max_backoff_ms=_as_int(data.get("max_backoff_ms", 4000), "retries.max_backoff_ms"),
        )


@dataclass(slots=True)
class WebClientConfig:
    """HTTP settings used when fetching the remote snapshot."""

    timeout_sec: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    trust_env: bool = False
    retries: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "WebClientConfig":
        if not data:
            return cls()
        return cls(
            timeout_sec=_as_float(data.get("timeout_sec", DEFAULT_TIMEOUT), "web.timeout_sec"),
            user_agent=str(_expand_env(data.get("user_agent") or DEFAULT_USER_AGENT)),
            trust_env=_as_bool(data.get("trust_env", False), "web.trust_env"),
            retries=RetryConfig.from_mapping(_ensure_mapping(data.get("retries"))),
        )


@dataclass(slots=True)
class ScrapedInfoSettings:
    """Resolved configuration for the scraped info provider."""

    file_path: Path | None = None
    source_url: str = ""
    max_age: timedelta = DEFAULT_MAX_AGE
    allow_web_fetch: bool = True
    cache_to_disk: bool = False
    web: WebClientConfig = field(default_factory=WebClientConfig)
    log_dir: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScrapedInfoSettings":
        """Create a settings instance from a mapping."""

        max_age = DEFAULT_MAX_AGE
        if data.get("max_age_hours") is not None:
            max_age = timedelta(hours=_as_float(data["max_age_hours"], "max_age_hours"))
        if max_age <= timedelta(0):
            raise ConfigError("max_age_hours must be positive")

        return cls(
            file_path=_as_path(data.get("file_path")),
            source_url=str(_expand_env(data.get("source_url") or "")).strip(),
            max_age=max_age,
            allow_web_fetch=_as_bool(data.get("allow_web_fetch", True), "allow_web_fetch"),
            cache_to_disk=_as_bool(data.get("cache_to_disk", False), "cache_to_disk"),
            web=WebClientConfig.from_mapping(_ensure_mapping(data.get("web"))),
            log_dir=_as_path(data.get("log_dir")),
        )


def load_settings(path: str | Path | None = None) -> ScrapedInfoSettings:
    """Load settings from the ``scraped_info`` section of a YAML file."""

    cfg_path = Path(path) if path else DEFAULT_SETTINGS_PATH
    if not cfg_path.exists():
        raise ConfigError(f"Settings file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        raise ConfigError("Settings file must contain a mapping")
    section = data.get(SETTINGS_SECTION)
    if section is None:
        return ScrapedInfoSettings()
    if not isinstance(section, Mapping):
        raise ConfigError(f"'{SETTINGS_SECTION}' section must be a mapping")
    return ScrapedInfoSettings.from_mapping(section)


def resolve_settings(path: str | Path | None = None) -> ScrapedInfoSettings:
    """Load settings from file and apply environment overrides."""

    base = load_settings(path)
    overrides: dict[str, Any] = {}

    file_path = _read_env(FILE_PATH_ENV)
    if file_path:
        overrides["file_path"] = Path(file_path).expanduser()
    source_url = _read_env(SOURCE_URL_ENV)
    if source_url:
        overrides["source_url"] = source_url
    max_age_hours = _read_env(MAX_AGE_HOURS_ENV)
    if max_age_hours:
        hours = _as_float(max_age_hours, MAX_AGE_HOURS_ENV)
        if hours <= 0:
            raise ConfigError(f"Environment variable {MAX_AGE_HOURS_ENV} must be positive")
        overrides["max_age"] = timedelta(hours=hours)
    allow_web_fetch = _read_env(ALLOW_WEB_FETCH_ENV)
    if allow_web_fetch:
        overrides["allow_web_fetch"] = _as_bool(allow_web_fetch, ALLOW_WEB_FETCH_ENV)
    cache_to_disk = _read_env(CACHE_TO_DISK_ENV)
    if cache_to_disk:
        overrides["cache_to_disk"] = _as_bool(cache_to_disk, CACHE_TO_DISK_ENV)
    timeout = _read_env(TIMEOUT_ENV)
    if timeout:
        overrides["web"] = replace(base.web, timeout_sec=_as_float(timeout, TIMEOUT_ENV))

    return replace(base, **overrides) if overrides else base


def _read_env(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    return value.strip()


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer") from exc


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number") from exc


def _as_path(value: Any) -> Path | None:
    if value is None:
        return None
    text = str(_expand_env(value)).strip()
    if not text:
        return None
    return Path(text).expanduser()


def _ensure_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, Mapping):
        return value
    return None


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if "${" in value and "}" in value and expanded == value:
            raise ConfigError(f"Environment variable not set for value: {value}")
        return expanded
    return value


__all__ = [
    "ALLOW_WEB_FETCH_ENV",
    "CACHE_TO_DISK_ENV",
    "DEFAULT_MAX_AGE",
    "DEFAULT_SETTINGS_PATH",
    "FILE_PATH_ENV",
    "MAX_AGE_HOURS_ENV",
    "RetryConfig",
    "ScrapedInfoSettings",
    "SOURCE_URL_ENV",
    "TIMEOUT_ENV",
    "WebClientConfig",
    "load_settings",
    "resolve_settings",
]
