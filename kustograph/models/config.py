"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_REMOTE_URL_TEMPLATE = "https://raw.githubusercontent.com/{owner}/{repo}/{revision}/{path}"


@dataclass
class BuildConfig:
    """Graph builder configuration."""

    concurrency: int = 8
    timeout_seconds: float = 0.0  # 0 disables the build deadline


@dataclass
class ResolverConfig:
    """Reference resolver configuration."""

    default_revision: str = "HEAD"


@dataclass
class RemoteConfig:
    """Remote repository retrieval configuration."""

    enabled: bool = False
    url_template: str = DEFAULT_REMOTE_URL_TEMPLATE
    timeout_seconds: int = 10


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"  # json or console


@dataclass
class KustographConfig:
    """Top-level kustograph configuration."""

    build: BuildConfig = field(default_factory=BuildConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    log: LogConfig = field(default_factory=LogConfig)
