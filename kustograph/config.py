"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kustograph.models.config import (
    DEFAULT_REMOTE_URL_TEMPLATE,
    BuildConfig,
    KustographConfig,
    LogConfig,
    RemoteConfig,
    ResolverConfig,
)
from kustograph.observability.logging import LOG_FORMATS

_TEMPLATE_FIELDS = ("{owner}", "{repo}", "{revision}", "{path}")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUSTOGRAPH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {value}. Must be one of {set(LOG_FORMATS)}")
    return value.lower()


def _validate_revision(value: str) -> str:
    if not value.strip() or any(ch.isspace() for ch in value):
        raise ValueError(f"Invalid default revision: {value!r}")
    return value


def _validate_url_template(value: str) -> str:
    missing = [name for name in _TEMPLATE_FIELDS if name not in value]
    if missing:
        raise ValueError(f"Remote URL template is missing placeholders: {', '.join(missing)}")
    return value


def _validate_timeout(value: float) -> float:
    if value < 0:
        raise ValueError(f"Build timeout must not be negative: {value}")
    return value


def load_config() -> KustographConfig:
    """Load configuration from KUSTOGRAPH_* environment variables."""
    return KustographConfig(
        build=BuildConfig(
            concurrency=_env_int("BUILD_CONCURRENCY", 8, min_val=1, max_val=64),
            timeout_seconds=_validate_timeout(_env_float("BUILD_TIMEOUT", 0.0)),
        ),
        resolver=ResolverConfig(
            default_revision=_validate_revision(_env("DEFAULT_REVISION", "HEAD")),
        ),
        remote=RemoteConfig(
            enabled=_env_bool("REMOTE_ENABLED", False),
            url_template=_validate_url_template(_env("REMOTE_URL_TEMPLATE", DEFAULT_REMOTE_URL_TEMPLATE)),
            timeout_seconds=_env_int("REMOTE_TIMEOUT", 10, min_val=1, max_val=120),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
