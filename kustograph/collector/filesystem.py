"""Local filesystem retrieval."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from kustograph.collector.base import MissingKustomizationError, ResourceNotFoundError, RetrievalError, Retriever
from kustograph.graph.models import KUSTOMIZATION_FILE_NAMES, RESOURCE_FILE_SUFFIXES, NodeIdentity
from kustograph.observability.metrics import retrievals_total

_log = structlog.get_logger(component="collector.filesystem")


def find_kustomization_file(directory: Path) -> Path | None:
    """Return the kustomization file in *directory*, first match by name precedence."""
    for name in KUSTOMIZATION_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def _resource_entries(directory: Path) -> tuple[str, ...]:
    return tuple(
        sorted(
            entry.name
            for entry in directory.iterdir()
            if entry.is_file() and entry.name.lower().endswith(RESOURCE_FILE_SUFFIXES)
        )
    )


class FilesystemRetriever(Retriever):
    """Reads local identities from disk in a worker thread."""

    @property
    def backend_name(self) -> str:
        return "filesystem"

    async def fetch(self, identity: NodeIdentity) -> bytes:
        if identity.is_remote:
            raise RetrievalError(identity, "filesystem retriever cannot fetch remote identities")
        try:
            content = await asyncio.to_thread(self._read, identity)
        except ResourceNotFoundError:
            retrievals_total.labels(backend=self.backend_name, outcome="not_found").inc()
            raise
        except RetrievalError:
            retrievals_total.labels(backend=self.backend_name, outcome="error").inc()
            raise
        retrievals_total.labels(backend=self.backend_name, outcome="ok").inc()
        return content

    def _read(self, identity: NodeIdentity) -> bytes:
        path = Path(identity.path)
        try:
            if path.is_dir():
                kustomization = find_kustomization_file(path)
                if kustomization is None:
                    raise MissingKustomizationError(identity, _resource_entries(path))
                _log.debug("kustomization_file_read", directory=identity.path, file=kustomization.name)
                return kustomization.read_bytes()
            if path.is_file():
                return path.read_bytes()
        except OSError as exc:
            raise RetrievalError(identity, f"read failed: {exc}") from exc
        raise ResourceNotFoundError(identity, "no such file or directory")
