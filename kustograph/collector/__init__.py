"""Collector package for kustograph.

Retrieval backends that turn a node identity into raw bytes for the node
loader.

Submodules
----------
base       -- Retriever ABC, RetrievalError, ResourceNotFoundError,
              MissingKustomizationError.
filesystem -- FilesystemRetriever: local directories and files.
http       -- HttpRetriever: remote repositories via raw-content URLs.
routing    -- RoutingRetriever: local/remote dispatch.
"""

from __future__ import annotations

from kustograph.collector.base import MissingKustomizationError, ResourceNotFoundError, RetrievalError, Retriever
from kustograph.collector.filesystem import FilesystemRetriever
from kustograph.collector.http import HttpRetriever
from kustograph.collector.routing import RoutingRetriever
from kustograph.models.config import RemoteConfig

__all__ = [
    "FilesystemRetriever",
    "HttpRetriever",
    "MissingKustomizationError",
    "ResourceNotFoundError",
    "RetrievalError",
    "Retriever",
    "RoutingRetriever",
    "build_retriever",
]


def build_retriever(config: RemoteConfig) -> Retriever:
    """Build the retriever used for a repository scan.

    The HTTP backend is attached only when remote retrieval is enabled.
    """
    remote = None
    if config.enabled:
        remote = HttpRetriever(url_template=config.url_template, timeout=float(config.timeout_seconds))
    return RoutingRetriever(local=FilesystemRetriever(), remote=remote)
