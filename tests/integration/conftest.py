"""Shared fixtures for kustograph integration tests.

Provides an in-memory retrieval backend and helpers to lay out Kustomize
trees, so graph builds can be exercised end to end without touching disk
or the network. Tests that need real files use ``write_tree`` with pytest's
``tmp_path``.
"""

from __future__ import annotations

import asyncio
import posixpath
from collections import Counter
from collections.abc import Collection
from pathlib import Path

import pytest

from kustograph.collector.base import ResourceNotFoundError, Retriever
from kustograph.graph.builder import GraphBuilder
from kustograph.graph.loader import NodeLoader
from kustograph.graph.models import KUSTOMIZATION_FILE_NAMES, NodeIdentity

# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Write *files* (relative path -> content) under *root* and return it."""
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


def remote_key(repository: str, revision: str, path: str) -> str:
    """Key under which InMemoryRetriever stores a remote file."""
    return f"{repository}@{revision}:{path}"


# ---------------------------------------------------------------------------
# In-memory retrieval backend
# ---------------------------------------------------------------------------


class InMemoryRetriever(Retriever):
    """Serves file contents from a dict and records how it was used.

    Local files are keyed by absolute path, remote files by ``remote_key``.
    A directory identity resolves to the kustomization file inside it.

    Args:
        files: Path (or remote key) -> file content.
        delay: Seconds every fetch sleeps, to keep loads overlapping.
        gate:  When set, every fetch waits for this event first.
        ungated: Identities that skip the gate.
    """

    def __init__(
        self,
        files: dict[str, str],
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
        ungated: Collection[NodeIdentity] = (),
    ) -> None:
        self._files = {key: value.encode("utf-8") for key, value in files.items()}
        self._delay = delay
        self._gate = gate
        self._ungated = frozenset(ungated)
        self.calls: Counter[NodeIdentity] = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def backend_name(self) -> str:
        return "memory"

    def _key(self, identity: NodeIdentity, path: str) -> str:
        if identity.is_remote:
            return remote_key(identity.repository or "", identity.revision or "", path)
        return path

    async def fetch(self, identity: NodeIdentity) -> bytes:
        self.calls[identity] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._gate is not None and identity not in self._ungated:
                await self._gate.wait()
            if self._delay:
                await asyncio.sleep(self._delay)
            return self._lookup(identity)
        finally:
            self.in_flight -= 1

    def _lookup(self, identity: NodeIdentity) -> bytes:
        direct = self._key(identity, identity.path)
        if direct in self._files:
            return self._files[direct]
        for name in KUSTOMIZATION_FILE_NAMES:
            joined = posixpath.join(identity.path, name) if identity.path else name
            candidate = self._key(identity, joined)
            if candidate in self._files:
                return self._files[candidate]
        raise ResourceNotFoundError(identity, "no such file or directory")


def make_builder(retriever: Retriever, concurrency: int = 8, **kwargs: object) -> GraphBuilder:
    return GraphBuilder(NodeLoader(retriever), concurrency=concurrency, **kwargs)  # type: ignore[arg-type]


def local(path: str) -> NodeIdentity:
    return NodeIdentity.local(path)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def apps_tree(tmp_path: Path) -> Path:
    """A small apps repository: a shared base, two overlays and a component.

    base                  <- overlays/dev, overlays/prod (bases)
    components/monitoring <- overlays/prod (component)
    standalone            -- references nothing, referenced by nothing
    """
    return write_tree(
        tmp_path / "apps",
        {
            "base/kustomization.yaml": "resources:\n- deployment.yaml\n- service.yaml\n",
            "base/deployment.yaml": "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n",
            "base/service.yaml": "apiVersion: v1\nkind: Service\nmetadata:\n  name: web\n",
            "overlays/dev/kustomization.yaml": "resources:\n- ../../base\n",
            "overlays/prod/kustomization.yml": (
                "bases:\n- ../../base\n"
                "components:\n- ../../components/monitoring\n"
                "patches:\n- path: replicas.yaml\n"
                "configMapGenerator:\n- name: settings\n  envs:\n  - prod.env\n"
            ),
            "overlays/prod/replicas.yaml": "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n",
            "overlays/prod/prod.env": "LOG_LEVEL=warn\n",
            "components/monitoring/kustomization.yaml": (
                "apiVersion: kustomize.config.k8s.io/v1alpha1\nkind: Component\nresources:\n- monitor.yaml\n"
            ),
            "components/monitoring/monitor.yaml": "kind: ServiceMonitor\n",
            "standalone/Kustomization": "namespace: tools\n",
            ".git/kustomization.yaml": "resources:\n- ignored.yaml\n",
        },
    )
