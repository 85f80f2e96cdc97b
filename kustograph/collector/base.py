"""Retrieval collaborator contract and errors."""

from __future__ import annotations

from abc import ABC, abstractmethod

from kustograph.graph.errors import KustographError
from kustograph.graph.models import NodeIdentity


class RetrievalError(KustographError):
    """Content for an identity could not be retrieved."""

    def __init__(self, identity: NodeIdentity, reason: str) -> None:
        super().__init__(f"{identity}: {reason}")
        self.identity = identity
        self.reason = reason


class ResourceNotFoundError(RetrievalError):
    """The identity does not exist in the backing store."""


class MissingKustomizationError(ResourceNotFoundError):
    """A directory exists but holds no kustomization file.

    ``entries`` names the resource files directly inside it, sorted.
    """

    def __init__(self, identity: NodeIdentity, entries: tuple[str, ...] = ()) -> None:
        super().__init__(identity, "directory has no kustomization file")
        self.entries = entries


class Retriever(ABC):
    """Abstract base class for every retrieval backend.

    ``fetch`` resolves a directory identity to the kustomization file it
    holds and a file identity to the file itself.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier used in metrics and logs."""

    @abstractmethod
    async def fetch(self, identity: NodeIdentity) -> bytes:
        """Return the raw content behind *identity*.

        Raises:
            ResourceNotFoundError -- nothing exists at *identity*.
            RetrievalError        -- the backend failed or is unreachable.
        """
