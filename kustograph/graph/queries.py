"""Read-only queries over a completed DependencyGraph.

Every function is pure: it reads the graph, builds a fresh result and
never mutates shared state, so queries may run concurrently.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Collection, Iterable
from enum import Enum

from kustograph.graph.dependency_graph import DependencyGraph
from kustograph.graph.errors import CycleDetectedError, NotAnAppError
from kustograph.graph.models import (
    ALL_EDGE_TYPES,
    BACKBONE_EDGE_TYPES,
    Edge,
    EdgeType,
    NodeIdentity,
    NodeKind,
    Reachability,
)


class _Visit(Enum):
    IN_PROGRESS = 1
    COMPLETE = 2


def _wanted(edge_types: Collection[EdgeType] | None) -> frozenset[EdgeType]:
    return ALL_EDGE_TYPES if edge_types is None else frozenset(edge_types)


def _reach(
    graph: DependencyGraph,
    origin: NodeIdentity,
    edge_types: Collection[EdgeType] | None,
    step: Callable[[NodeIdentity], tuple[Edge, ...]],
    other_end: Callable[[Edge], NodeIdentity],
) -> Reachability:
    graph.get_node(origin)
    wanted = _wanted(edge_types)
    distances: dict[NodeIdentity, int] = {}
    order: list[NodeIdentity] = []
    seen = {origin}
    queue = deque([(origin, 0)])
    while queue:
        current, distance = queue.popleft()
        for edge in step(current):
            if edge.edge_type not in wanted:
                continue
            neighbour = other_end(edge)
            if neighbour in seen:
                continue
            seen.add(neighbour)
            distances[neighbour] = distance + 1
            order.append(neighbour)
            queue.append((neighbour, distance + 1))
    return Reachability(
        origin=origin,
        direct=tuple(i for i in order if distances[i] == 1),
        transitive=tuple(i for i in order if distances[i] > 1),
        distances=distances,
    )


def ancestors(
    graph: DependencyGraph,
    identity: NodeIdentity,
    edge_types: Collection[EdgeType] | None = None,
) -> Reachability:
    """Nodes that reach *identity* through incoming edges of *edge_types*.

    ``direct`` holds the declaring nodes, ``transitive`` everything further
    away. Both are in breadth-first order. All edge types when None.
    """
    return _reach(graph, identity, edge_types, graph.incoming_edges, lambda e: e.source)


def descendants(
    graph: DependencyGraph,
    identity: NodeIdentity,
    edge_types: Collection[EdgeType] | None = None,
) -> Reachability:
    """Nodes reachable from *identity* through outgoing edges of *edge_types*."""
    return _reach(graph, identity, edge_types, graph.outgoing_edges, lambda e: e.target)


def paths_between(
    graph: DependencyGraph,
    source: NodeIdentity,
    target: NodeIdentity,
    edge_types: Collection[EdgeType] | None = None,
) -> tuple[tuple[NodeIdentity, ...], ...]:
    """Every simple path from *source* to *target*, in declaration order.

    Paths are node sequences; parallel edges between the same pair of
    nodes do not produce duplicate paths.
    """
    graph.get_node(source)
    graph.get_node(target)
    if source == target:
        return ((source,),)

    wanted = _wanted(edge_types)
    found: dict[tuple[NodeIdentity, ...], None] = {}
    path = [source]
    on_path = {source}
    stack = [iter(graph.outgoing_edges(source))]
    while stack:
        edge = next(stack[-1], None)
        if edge is None:
            stack.pop()
            on_path.discard(path.pop())
            continue
        if edge.edge_type not in wanted or edge.target in on_path:
            continue
        if edge.target == target:
            found.setdefault((*path, target), None)
            continue
        path.append(edge.target)
        on_path.add(edge.target)
        stack.append(iter(graph.outgoing_edges(edge.target)))
    return tuple(found)


def _post_order(
    graph: DependencyGraph,
    starts: Iterable[NodeIdentity],
    wanted: frozenset[EdgeType],
) -> list[NodeIdentity]:
    """Depth-first post-order over *wanted* outgoing edges.

    Children are visited in declaration order. Raises CycleDetectedError
    with the cycle in traversal order when an in-progress node is reached.
    """
    state: dict[NodeIdentity, _Visit] = {}
    order: list[NodeIdentity] = []
    for start in starts:
        if start in state:
            continue
        state[start] = _Visit.IN_PROGRESS
        stack = [(start, iter(graph.outgoing_edges(start)))]
        while stack:
            current, edges = stack[-1]
            edge = next(edges, None)
            if edge is None:
                stack.pop()
                state[current] = _Visit.COMPLETE
                order.append(current)
                continue
            if edge.edge_type not in wanted:
                continue
            visit = state.get(edge.target)
            if visit is _Visit.COMPLETE:
                continue
            if visit is _Visit.IN_PROGRESS:
                on_stack = [identity for identity, _ in stack]
                cycle = on_stack[on_stack.index(edge.target) :] + [edge.target]
                raise CycleDetectedError(
                    cycle,
                    raw_reference=edge.raw_reference,
                    declared_by=current,
                    chain=on_stack,
                )
            state[edge.target] = _Visit.IN_PROGRESS
            stack.append((edge.target, iter(graph.outgoing_edges(edge.target))))
    return order


def check_acyclic(
    graph: DependencyGraph,
    edge_types: Collection[EdgeType] = BACKBONE_EDGE_TYPES,
) -> None:
    """Raise CycleDetectedError if *edge_types* edges form a cycle.

    Traversal starts from the graph roots in order, then from any node not
    reached from a root, so the reported cycle is reproducible.
    """
    wanted = frozenset(edge_types)
    _post_order(graph, (*graph.roots, *graph.identities), wanted)


def application_order(
    graph: DependencyGraph,
    identity: NodeIdentity,
    edge_types: Collection[EdgeType] = BACKBONE_EDGE_TYPES,
) -> tuple[NodeIdentity, ...]:
    """Merge order of the Base/Component closure of *identity*.

    The farthest base comes first and *identity* last. Every node appears
    after all the nodes it extends; ties follow declaration order.
    """
    graph.get_node(identity)
    return tuple(_post_order(graph, (identity,), frozenset(edge_types)))


def layers(
    graph: DependencyGraph,
    identity: NodeIdentity,
    edge_types: Collection[EdgeType] = BACKBONE_EDGE_TYPES,
) -> tuple[tuple[NodeIdentity, ...], ...]:
    """Application order grouped into layers.

    Layer 0 holds nodes that extend nothing; a node sits one layer above
    the highest node it extends. Within a layer, application order holds.
    """
    wanted = frozenset(edge_types)
    order = application_order(graph, identity, wanted)
    level: dict[NodeIdentity, int] = {}
    for node in order:
        children = [e.target for e in graph.outgoing_edges(node) if e.edge_type in wanted]
        level[node] = 1 + max((level[c] for c in children), default=-1)
    grouped: list[list[NodeIdentity]] = [[] for _ in range(max(level.values()) + 1)]
    for node in order:
        grouped[level[node]].append(node)
    return tuple(tuple(group) for group in grouped)


def impact(graph: DependencyGraph, identity: NodeIdentity) -> tuple[NodeIdentity, ...]:
    """Root overlays whose assembled output depends on *identity*, sorted.

    A root overlay is its own impact set.
    """
    affected = ancestors(graph, identity)
    return tuple(sorted(root for root in graph.root_overlays() if root == identity or root in affected))


def app_files(graph: DependencyGraph, identity: NodeIdentity) -> tuple[NodeIdentity, ...]:
    """The root overlay *identity* followed by every node it pulls in.

    Raises NotAnAppError when *identity* is referenced by another overlay
    or is not an overlay.
    """
    node = graph.get_node(identity)
    if node.kind is not NodeKind.OVERLAY or graph.incoming_edges(identity):
        raise NotAnAppError(identity)
    return (identity, *descendants(graph, identity).all)
