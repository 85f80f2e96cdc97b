"""Overlay dependency graph.

In-memory graph of overlay directories, manifest files, patches and
generator inputs, connected by the references overlays declare
(bases, resources, components, patches, generators).

The builder and loader live in ``kustograph.graph.builder`` and
``kustograph.graph.loader``; they are not re-exported here because they
pull in the retrieval and parsing collaborators.
"""

from kustograph.graph.dependency_graph import DependencyGraph
from kustograph.graph.errors import (
    AmbiguousReferenceError,
    BuildCancelledError,
    CycleDetectedError,
    GraphBuildError,
    GraphQueryError,
    KustographError,
    NodeMalformedError,
    NodeNotFoundError,
    NotAnAppError,
    ReferenceSyntaxError,
    UnknownNodeError,
)
from kustograph.graph.models import (
    BACKBONE_EDGE_TYPES,
    DeclaredReference,
    Edge,
    EdgeType,
    Node,
    NodeIdentity,
    NodeKind,
    Reachability,
    ReferenceType,
)

__all__ = [
    "BACKBONE_EDGE_TYPES",
    "AmbiguousReferenceError",
    "BuildCancelledError",
    "CycleDetectedError",
    "DeclaredReference",
    "DependencyGraph",
    "Edge",
    "EdgeType",
    "GraphBuildError",
    "GraphQueryError",
    "KustographError",
    "Node",
    "NodeIdentity",
    "NodeKind",
    "NodeMalformedError",
    "NodeNotFoundError",
    "NotAnAppError",
    "Reachability",
    "ReferenceSyntaxError",
    "ReferenceType",
    "UnknownNodeError",
]
