"""Data structures for the overlay dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from functools import total_ordering
from typing import Any

KUSTOMIZATION_FILE_NAMES = ("kustomization.yaml", "kustomization.yml", "Kustomization")
RESOURCE_FILE_SUFFIXES = (".yaml", ".yml", ".json")


class NodeKind(StrEnum):
    """Closed set of node variants, decided once at load time."""

    OVERLAY = "overlay"
    RESOURCE_FILE = "resource_file"
    PATCH_FILE = "patch_file"
    GENERATOR_SPEC = "generator_spec"


class EdgeType(StrEnum):
    """Types of references an overlay can declare.

    Edges carry the type of the reference that produced them, so the same
    enum serves as both the declared reference type and the edge type.
    """

    BASE = "base"
    RESOURCE = "resource"
    COMPONENT = "component"
    PATCH = "patch"
    GENERATOR = "generator"

    @property
    def is_backbone(self) -> bool:
        """True for Base/Component, the relation that must stay acyclic."""
        return self in BACKBONE_EDGE_TYPES


ReferenceType = EdgeType

BACKBONE_EDGE_TYPES: frozenset[EdgeType] = frozenset({EdgeType.BASE, EdgeType.COMPONENT})
ALL_EDGE_TYPES: frozenset[EdgeType] = frozenset(EdgeType)


@total_ordering
@dataclass(frozen=True)
class NodeIdentity:
    """Canonical key of a node.

    Local nodes have no repository and an absolute POSIX path. Remote nodes
    carry a canonical ``host/owner/repo`` key, a revision and a path relative
    to the repository root ("" for the root itself).
    """

    repository: str | None
    revision: str | None
    path: str

    @classmethod
    def local(cls, path: str) -> NodeIdentity:
        return cls(repository=None, revision=None, path=path)

    @classmethod
    def remote(cls, repository: str, revision: str, path: str = "") -> NodeIdentity:
        return cls(repository=repository, revision=revision, path=path)

    @property
    def is_remote(self) -> bool:
        return self.repository is not None

    @property
    def name(self) -> str:
        """Last path segment, or the repository name for a remote root."""
        if not self.path and self.repository:
            return self.repository.rsplit("/", 1)[-1]
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    @property
    def looks_like_file(self) -> bool:
        """True when the last segment carries a resource-file suffix."""
        return self.name.lower().endswith(RESOURCE_FILE_SUFFIXES)

    @property
    def sort_key(self) -> tuple[int, str, str, str]:
        """Local identities sort before remote ones."""
        return (int(self.is_remote), self.repository or "", self.revision or "", self.path)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, NodeIdentity):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        if self.repository is None:
            return self.path
        return f"{self.repository}//{self.path}?ref={self.revision}"


@dataclass(frozen=True)
class DeclaredReference:
    """One reference as written in a node's own document."""

    raw: str
    reference_type: EdgeType
    field: str  # declaration field the reference was read from


@dataclass(frozen=True)
class Node:
    """An overlay directory or a standalone file.

    Created exactly once by the node loader; ``document`` is the parsed
    payload and is never interpreted beyond reference extraction.
    """

    identity: NodeIdentity
    kind: NodeKind
    declared_references: tuple[DeclaredReference, ...] = ()
    document: Any = field(default=None, compare=False, repr=False)

    @property
    def is_overlay(self) -> bool:
        return self.kind is NodeKind.OVERLAY


@dataclass(frozen=True)
class Edge:
    """A typed, ordered edge from a declaring node to its target."""

    source: NodeIdentity
    target: NodeIdentity
    edge_type: EdgeType
    order: int  # position of the reference in the source's declaration
    raw_reference: str = ""


@dataclass(frozen=True)
class Reachability:
    """Result of an ancestors/descendants query, partitioned by distance."""

    origin: NodeIdentity
    direct: tuple[NodeIdentity, ...] = ()
    transitive: tuple[NodeIdentity, ...] = ()
    distances: dict[NodeIdentity, int] = field(default_factory=dict, compare=False)

    @property
    def all(self) -> tuple[NodeIdentity, ...]:
        return self.direct + self.transitive

    def __contains__(self, identity: object) -> bool:
        return identity in self.distances

    def __len__(self) -> int:
        return len(self.distances)
