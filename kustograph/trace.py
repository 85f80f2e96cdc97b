"""Repository-level entry point.

Scans an apps directory for kustomization files, builds one graph with
every overlay found as a root, and answers the questions users ask of a
Kustomize repository: which applications exist, which of them a changed
file affects, which files make up an application, and in which order its
bases are layered.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence
from pathlib import Path

from kustograph.collector import Retriever, build_retriever
from kustograph.collector.filesystem import find_kustomization_file
from kustograph.graph import queries
from kustograph.graph.builder import GraphBuilder
from kustograph.graph.dependency_graph import DependencyGraph
from kustograph.graph.loader import NodeLoader
from kustograph.graph.models import NodeIdentity, NodeKind
from kustograph.graph.resolver import ReferenceResolver, is_remote_reference
from kustograph.models.config import KustographConfig
from kustograph.observability.logging import get_logger

_logger = get_logger("trace")


def discover_overlays(apps_dir: Path) -> list[Path]:
    """Directories under *apps_dir* holding a kustomization file, sorted.

    Hidden directories (``.git`` and friends) are skipped.
    """
    found: list[Path] = []
    for current, dirs, _files in os.walk(apps_dir):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        directory = Path(current)
        if find_kustomization_file(directory) is not None:
            found.append(directory.resolve())
    return sorted(found)


def build_graph_builder(config: KustographConfig, retriever: Retriever | None = None) -> GraphBuilder:
    """Wire loader, resolver and builder from configuration."""
    loader = NodeLoader(retriever or build_retriever(config.remote))
    return GraphBuilder(
        loader,
        ReferenceResolver(config.resolver.default_revision),
        concurrency=config.build.concurrency,
        timeout=config.build.timeout_seconds,
    )


class OverlayTrace:
    """A built graph plus path-oriented queries over it."""

    def __init__(self, graph: DependencyGraph, resolver: ReferenceResolver | None = None) -> None:
        self._graph = graph
        self._resolver = resolver or ReferenceResolver()

    @classmethod
    async def from_directory(
        cls,
        apps_dir: Path | str,
        config: KustographConfig | None = None,
        retriever: Retriever | None = None,
    ) -> OverlayTrace:
        """Scan *apps_dir* and build the graph of every overlay in it.

        An apps directory holding no kustomization file yields an empty
        graph. Raises FileNotFoundError when *apps_dir* is not a directory.
        """
        config = config or KustographConfig()
        apps_path = Path(apps_dir)
        if not apps_path.is_dir():
            raise FileNotFoundError(f"Apps directory not found or is not a directory: {apps_path}")

        overlays = await asyncio.to_thread(discover_overlays, apps_path)
        if not overlays:
            _logger.warning("no_overlays_found", apps_dir=str(apps_path))
            return cls(DependencyGraph(nodes=(), edges=()), ReferenceResolver(config.resolver.default_revision))
        _logger.info("overlays_discovered", apps_dir=str(apps_path), count=len(overlays))
        return await cls.from_roots([p.as_posix() for p in overlays], config, retriever)

    @classmethod
    async def from_roots(
        cls,
        roots: Sequence[NodeIdentity | str],
        config: KustographConfig | None = None,
        retriever: Retriever | None = None,
    ) -> OverlayTrace:
        config = config or KustographConfig()
        builder = build_graph_builder(config, retriever)
        graph = await builder.build(roots)
        return cls(graph, ReferenceResolver(config.resolver.default_revision))

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def identity_for(self, location: Path | str) -> NodeIdentity:
        """Identity of a local path (relative to the working directory) or remote locator."""
        text = str(location)
        if isinstance(location, Path) or not is_remote_reference(text):
            text = Path(location).resolve().as_posix()
        return self._resolver.root(text)

    def root_apps(self) -> list[NodeIdentity]:
        """Overlays no other overlay references, sorted."""
        return sorted(self._graph.root_overlays())

    def apps_with(self, location: Path | str) -> list[NodeIdentity]:
        """Root applications affected by a change to *location*."""
        return list(queries.impact(self._graph, self.identity_for(location)))

    def app_files(self, app: Path | str) -> list[NodeIdentity]:
        """Every node a root application is assembled from, the app first."""
        return list(queries.app_files(self._graph, self.identity_for(app)))

    def application_order(self, app: Path | str) -> list[NodeIdentity]:
        """Bases and components of *app* in merge order, *app* last."""
        return list(queries.application_order(self._graph, self.identity_for(app)))

    def file_path(self, identity: NodeIdentity) -> str:
        """Path users recognise: the kustomization file for a local overlay."""
        if identity.is_remote:
            return str(identity)
        node = self._graph.get_node(identity)
        if node.kind is NodeKind.OVERLAY and not identity.looks_like_file:
            kustomization = find_kustomization_file(Path(identity.path))
            if kustomization is not None:
                return kustomization.as_posix()
        return identity.path
