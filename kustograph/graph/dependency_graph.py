"""Immutable overlay dependency graph.

Built once by the graph builder and never mutated afterwards, so any
number of readers may query it concurrently without locking. Derived views
(``filter``) are new graphs sharing the same Node objects.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Iterator, Sequence
from types import MappingProxyType

from kustograph.graph.errors import UnknownNodeError
from kustograph.graph.models import Edge, EdgeType, Node, NodeIdentity, NodeKind


class DependencyGraph:
    """Nodes keyed by identity plus ordered, typed edges.

    Outgoing edges keep declaration order. Incoming edges are computed once
    here: grouped by source identity (sorted) and then by declaration order.

    Raises ValueError at construction when an identity is duplicated or an
    edge endpoint is missing, so a committed graph never holds dangling edges.
    """

    def __init__(
        self,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        roots: Sequence[NodeIdentity] = (),
    ) -> None:
        node_index: dict[NodeIdentity, Node] = {}
        for node in nodes:
            if node.identity in node_index:
                raise ValueError(f"Duplicate node identity: {node.identity}")
            node_index[node.identity] = node

        outgoing: dict[NodeIdentity, list[Edge]] = {identity: [] for identity in node_index}
        for edge in edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in node_index:
                    raise ValueError(f"Edge endpoint not in graph: {endpoint}")
            outgoing[edge.source].append(edge)

        incoming: dict[NodeIdentity, list[Edge]] = {identity: [] for identity in node_index}
        for source in sorted(outgoing):
            out = sorted(outgoing[source], key=lambda e: e.order)
            outgoing[source] = out
            for edge in out:
                incoming[edge.target].append(edge)

        for root in roots:
            if root not in node_index:
                raise ValueError(f"Root not in graph: {root}")

        self._nodes = MappingProxyType(node_index)
        self._outgoing = MappingProxyType({k: tuple(v) for k, v in outgoing.items()})
        self._incoming = MappingProxyType({k: tuple(v) for k, v in incoming.items()})
        self._roots = tuple(roots)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_node(self, identity: NodeIdentity) -> Node:
        try:
            return self._nodes[identity]
        except KeyError:
            raise UnknownNodeError(identity) from None

    def has_node(self, identity: NodeIdentity) -> bool:
        return identity in self._nodes

    def outgoing_edges(self, identity: NodeIdentity) -> tuple[Edge, ...]:
        """Edges declared by *identity*, in declaration order."""
        try:
            return self._outgoing[identity]
        except KeyError:
            raise UnknownNodeError(identity) from None

    def incoming_edges(self, identity: NodeIdentity) -> tuple[Edge, ...]:
        """Edges pointing at *identity*, grouped by source then declaration order."""
        try:
            return self._incoming[identity]
        except KeyError:
            raise UnknownNodeError(identity) from None

    # ------------------------------------------------------------------
    # Whole-graph views
    # ------------------------------------------------------------------

    @property
    def roots(self) -> tuple[NodeIdentity, ...]:
        """Identities the build started from, in the order given."""
        return self._roots

    @property
    def nodes(self) -> tuple[Node, ...]:
        """All nodes in discovery order."""
        return tuple(self._nodes.values())

    @property
    def identities(self) -> tuple[NodeIdentity, ...]:
        return tuple(self._nodes)

    @property
    def edges(self) -> tuple[Edge, ...]:
        """All edges, grouped by source in discovery order."""
        return tuple(edge for identity in self._nodes for edge in self._outgoing[identity])

    def root_overlays(self) -> tuple[NodeIdentity, ...]:
        """Overlays that no other node references, in discovery order."""
        return tuple(
            identity
            for identity, node in self._nodes.items()
            if node.kind is NodeKind.OVERLAY and not self._incoming[identity]
        )

    def filter(self, edge_types: Collection[EdgeType]) -> DependencyGraph:
        """Derived graph with the same nodes and only edges of *edge_types*."""
        wanted = frozenset(edge_types)
        return DependencyGraph(
            nodes=self._nodes.values(),
            edges=(edge for edge in self.edges if edge.edge_type in wanted),
            roots=self._roots,
        )

    def __contains__(self, identity: object) -> bool:
        return identity in self._nodes

    def __iter__(self) -> Iterator[NodeIdentity]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        edge_count = sum(len(edges) for edges in self._outgoing.values())
        return f"DependencyGraph(nodes={len(self._nodes)}, edges={edge_count}, roots={len(self._roots)})"
