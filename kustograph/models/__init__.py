"""Core data structures for kustograph."""

from kustograph.models.config import (
    BuildConfig,
    KustographConfig,
    LogConfig,
    RemoteConfig,
    ResolverConfig,
)

__all__ = [
    "BuildConfig",
    "KustographConfig",
    "LogConfig",
    "RemoteConfig",
    "ResolverConfig",
]
