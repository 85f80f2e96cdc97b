"""Error taxonomy for graph builds and graph queries.

Build-time errors abort the whole build and carry enough context to locate
the broken declaration: the raw reference, the node that declared it, and
the chain of declaring nodes from a build root down to that node.
"""

from __future__ import annotations

from collections.abc import Sequence

from kustograph.graph.models import NodeIdentity


class KustographError(Exception):
    """Base class for every error raised by kustograph."""


class GraphBuildError(KustographError):
    """A structural error that aborts a graph build."""

    kind = "build_error"

    def __init__(
        self,
        message: str,
        *,
        raw_reference: str | None = None,
        declared_by: NodeIdentity | None = None,
        chain: Sequence[NodeIdentity] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.raw_reference = raw_reference
        self.declared_by = declared_by
        self.chain: tuple[NodeIdentity, ...] = tuple(chain)

    def attribute(
        self,
        *,
        raw_reference: str | None = None,
        declared_by: NodeIdentity | None = None,
        chain: Sequence[NodeIdentity] = (),
    ) -> GraphBuildError:
        """Fill in the declaring context if it is not already known."""
        if self.raw_reference is None:
            self.raw_reference = raw_reference
        if self.declared_by is None:
            self.declared_by = declared_by
        if not self.chain:
            self.chain = tuple(chain)
        return self

    def __str__(self) -> str:
        parts = [self.message]
        if self.raw_reference is not None:
            parts.append(f"reference={self.raw_reference!r}")
        if self.declared_by is not None:
            parts.append(f"declared_by={self.declared_by}")
        if self.chain:
            parts.append("chain=" + " -> ".join(str(i) for i in self.chain))
        return "; ".join(parts)


class ReferenceSyntaxError(GraphBuildError):
    """A raw reference that cannot be resolved to an identity."""

    kind = "reference_syntax"


class NodeNotFoundError(GraphBuildError):
    """A resolved identity that does not exist or is unreachable."""

    kind = "node_not_found"

    def __init__(self, identity: NodeIdentity, reason: str = "", **kwargs: object) -> None:
        message = f"Node not found: {identity}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, **kwargs)  # type: ignore[arg-type]
        self.identity = identity


class NodeMalformedError(GraphBuildError):
    """A node whose document cannot be parsed or has an invalid shape."""

    kind = "node_malformed"

    def __init__(self, identity: NodeIdentity, reason: str = "", **kwargs: object) -> None:
        message = f"Malformed node: {identity}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, **kwargs)  # type: ignore[arg-type]
        self.identity = identity


class AmbiguousReferenceError(GraphBuildError):
    """One identity referenced as two incompatible node kinds."""

    kind = "ambiguous_reference"


class CycleDetectedError(GraphBuildError):
    """A cycle in the Base/Component relation.

    ``cycle`` lists the nodes in traversal order and repeats the first node
    at the end, so a self-reference reads ``[A, A]``.
    """

    kind = "cycle_detected"

    def __init__(self, cycle: Sequence[NodeIdentity], **kwargs: object) -> None:
        self.cycle: tuple[NodeIdentity, ...] = tuple(cycle)
        path = " -> ".join(str(identity) for identity in self.cycle)
        super().__init__(f"Base/Component cycle detected: {path}", **kwargs)  # type: ignore[arg-type]


class BuildCancelledError(GraphBuildError):
    """The caller cancelled the build or its deadline passed."""

    kind = "build_cancelled"


class GraphQueryError(KustographError):
    """A query that cannot be answered; the graph itself stays valid."""


class UnknownNodeError(GraphQueryError, LookupError):
    """Query against an identity absent from the graph."""

    def __init__(self, identity: NodeIdentity) -> None:
        super().__init__(f"Unknown node: {identity}")
        self.identity = identity


class NotAnAppError(GraphQueryError):
    """The node exists but is not a root overlay."""

    def __init__(self, identity: NodeIdentity) -> None:
        super().__init__(f"Not a root application: {identity}")
        self.identity = identity
