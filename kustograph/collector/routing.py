"""Dispatch between local and remote retrieval backends."""

from __future__ import annotations

from kustograph.collector.base import ResourceNotFoundError, Retriever
from kustograph.graph.models import NodeIdentity


class RoutingRetriever(Retriever):
    """Sends local identities to one backend and remote ones to another.

    With no remote backend configured, remote identities are reported as
    not found so the build fails with a pointer to the declaring node.
    """

    def __init__(self, local: Retriever, remote: Retriever | None = None) -> None:
        self._local = local
        self._remote = remote

    @property
    def backend_name(self) -> str:
        return "routing"

    async def fetch(self, identity: NodeIdentity) -> bytes:
        if not identity.is_remote:
            return await self._local.fetch(identity)
        if self._remote is None:
            raise ResourceNotFoundError(identity, "remote retrieval is disabled")
        return await self._remote.fetch(identity)
