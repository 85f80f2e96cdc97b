"""Graph builder: recursive, concurrent discovery of overlay nodes.

Discovery runs as asyncio tasks, one per identity. A marker table keyed
by identity (unvisited / in progress / complete) doubles as a single-flight
table: the first discoverer of an identity schedules its load, later
discoverers only record their edge and reuse that entry. Loads are bounded
by a semaphore so remote backends are not flooded.

Self-references on Base/Component edges are reported as soon as they are
resolved. Longer Base/Component cycles are found once discovery settles, by
a depth-first pass from the roots in declaration order, which keeps the
reported cycle path identical from run to run. Identities referenced with
conflicting kinds are found the same way, by the assembly walk.

A build either returns a complete, validated DependencyGraph or raises;
nothing partially built is ever handed to the caller.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from kustograph.graph.dependency_graph import DependencyGraph
from kustograph.graph.errors import (
    AmbiguousReferenceError,
    BuildCancelledError,
    CycleDetectedError,
    GraphBuildError,
    ReferenceSyntaxError,
)
from kustograph.graph.loader import NodeLoader
from kustograph.graph.models import DeclaredReference, Edge, Node, NodeIdentity, NodeKind
from kustograph.graph.queries import check_acyclic
from kustograph.graph.resolver import ReferenceResolver
from kustograph.observability.logging import build_context, get_logger
from kustograph.observability.metrics import build_duration_seconds, build_errors_total

_logger = get_logger("graph.builder")

DEFAULT_CONCURRENCY = 8


class VisitState(StrEnum):
    """Discovery marker of one identity."""

    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass
class _Entry:
    """Marker-table row for one discovered identity."""

    identity: NodeIdentity
    expected_kind: NodeKind
    sequence: int
    chain: tuple[NodeIdentity, ...]  # root -> declaring node, excluding this identity
    reference: DeclaredReference | None = None
    state: VisitState = VisitState.UNVISITED
    node: Node | None = None
    edges: list[Edge] = field(default_factory=list)
    task: asyncio.Task[None] | None = None

    @property
    def declared_by(self) -> NodeIdentity | None:
        return self.chain[-1] if self.chain else None


class GraphBuilder:
    """Builds a DependencyGraph from one or more root overlays.

    Args:
        loader:       Node loader wired to the retrieval/parsing collaborators.
        resolver:     Reference resolver. A default one is created when omitted.
        concurrency:  Maximum number of loads in flight at once.
        timeout:      Build deadline in seconds; None or 0 disables it.
        cancel_event: Setting this event aborts the build.

    A builder holds no per-build state and may run several builds.
    """

    def __init__(
        self,
        loader: NodeLoader,
        resolver: ReferenceResolver | None = None,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self._loader = loader
        self._resolver = resolver or ReferenceResolver()
        self._concurrency = concurrency
        self._timeout = timeout or None
        self._cancel_event = cancel_event

    async def build(self, roots: Sequence[NodeIdentity | str]) -> DependencyGraph:
        """Discover everything reachable from *roots* and return the graph.

        String roots are absolute paths or remote locators.

        Raises:
            ReferenceSyntaxError, NodeNotFoundError, NodeMalformedError,
            AmbiguousReferenceError, CycleDetectedError, BuildCancelledError.
        """
        run = _BuildRun(
            loader=self._loader,
            resolver=self._resolver,
            concurrency=self._concurrency,
            timeout=self._timeout,
            cancel_event=self._cancel_event,
        )
        return await run.execute(roots)


class _BuildRun:
    """State of a single build call."""

    def __init__(
        self,
        loader: NodeLoader,
        resolver: ReferenceResolver,
        concurrency: int,
        timeout: float | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        self._loader = loader
        self._resolver = resolver
        self._semaphore = asyncio.Semaphore(concurrency)
        self._lock = asyncio.Lock()
        self._entries: dict[NodeIdentity, _Entry] = {}
        self._timeout = timeout
        self._deadline: float | None = None
        self._cancel_event = cancel_event
        self._cancel_waiter: asyncio.Task[bool] | None = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(self, roots: Sequence[NodeIdentity | str]) -> DependencyGraph:
        root_ids = self._root_identities(roots)
        with build_context(root_ids):
            return await self._run(root_ids)

    async def _run(self, root_ids: list[NodeIdentity]) -> DependencyGraph:
        started = time.monotonic()
        loop = asyncio.get_running_loop()
        if self._timeout is not None:
            self._deadline = loop.time() + self._timeout
        if self._cancel_event is not None:
            self._cancel_waiter = asyncio.create_task(self._cancel_event.wait(), name="build-cancel-waiter")

        _logger.info("build_started", roots=[str(r) for r in root_ids])
        try:
            for root in root_ids:
                await self._claim(root, NodeKind.OVERLAY, chain=(), reference=None)
            await self._drain()
            graph = self._assemble(root_ids)
            check_acyclic(graph)
        except GraphBuildError as exc:
            build_errors_total.labels(error=exc.kind).inc()
            _logger.error(
                "build_failed",
                error=exc.kind,
                detail=exc.message,
                raw_reference=exc.raw_reference,
                declared_by=str(exc.declared_by) if exc.declared_by else None,
                chain=[str(i) for i in exc.chain],
            )
            raise
        finally:
            await self._shutdown()

        duration = time.monotonic() - started
        build_duration_seconds.observe(duration)
        _logger.info(
            "build_completed",
            nodes=len(graph),
            edges=len(graph.edges),
            duration_ms=round(duration * 1000.0, 2),
        )
        return graph

    def _root_identities(self, roots: Sequence[NodeIdentity | str]) -> list[NodeIdentity]:
        identities: list[NodeIdentity] = []
        for root in roots:
            identity = self._resolver.root(root) if isinstance(root, str) else root
            if identity not in identities:
                identities.append(identity)
        if not identities:
            raise ValueError("build requires at least one root")
        return identities

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def _claim(
        self,
        identity: NodeIdentity,
        expected_kind: NodeKind,
        chain: tuple[NodeIdentity, ...],
        reference: DeclaredReference | None,
    ) -> None:
        """Schedule the load of *identity* unless another discoverer already has."""
        async with self._lock:
            entry = self._entries.get(identity)
            if entry is None:
                self._check_cancelled()
                entry = _Entry(
                    identity=identity,
                    expected_kind=expected_kind,
                    sequence=len(self._entries),
                    chain=chain,
                    reference=reference,
                )
                self._entries[identity] = entry
                entry.state = VisitState.IN_PROGRESS
                entry.task = asyncio.create_task(self._expand(entry), name=f"discover:{identity}")
                return

        if entry.expected_kind is not expected_kind:
            # reported by _assemble
            _logger.debug(
                "kind_conflict",
                node=str(identity),
                loaded_as=entry.expected_kind.value,
                referenced_as=expected_kind.value,
            )
            return
        _logger.debug("node_reused", node=str(identity), state=entry.state.value)

    async def _expand(self, entry: _Entry) -> None:
        """Load one node, resolve its references and claim their targets."""
        identity = entry.identity
        async with self._semaphore:
            self._check_cancelled()
            try:
                node = await self._loader.load(identity, entry.expected_kind)
            except GraphBuildError as exc:
                raise exc.attribute(
                    raw_reference=entry.reference.raw if entry.reference else None,
                    declared_by=entry.declared_by,
                    chain=entry.chain,
                )
        entry.node = node

        chain = (*entry.chain, identity)
        for order, reference in enumerate(node.declared_references):
            try:
                target = self._resolver.resolve(reference.raw, identity)
            except ReferenceSyntaxError as exc:
                raise exc.attribute(raw_reference=reference.raw, declared_by=identity, chain=chain)

            if reference.reference_type.is_backbone and target == identity:
                raise CycleDetectedError(
                    [identity, identity],
                    raw_reference=reference.raw,
                    declared_by=identity,
                    chain=chain,
                )
            entry.edges.append(
                Edge(
                    source=identity,
                    target=target,
                    edge_type=reference.reference_type,
                    order=order,
                    raw_reference=reference.raw,
                )
            )
            await self._claim(
                target,
                self._resolver.classify(target, reference.reference_type),
                chain=chain,
                reference=reference,
            )
        entry.state = VisitState.COMPLETE

    async def _drain(self) -> None:
        """Wait until every scheduled discovery task has finished.

        Tasks spawn further tasks, so the pending set is re-read after each
        wakeup. The first failure (by discovery sequence) aborts the build.
        """
        while True:
            failure = self._first_failure()
            if failure is not None:
                raise failure
            pending: set[asyncio.Future[object]] = {
                entry.task for entry in self._entries.values() if entry.task is not None and not entry.task.done()
            }
            if not pending:
                return
            if self._cancel_waiter is not None:
                pending.add(self._cancel_waiter)
            await asyncio.wait(pending, timeout=self._remaining(), return_when=asyncio.FIRST_COMPLETED)
            self._check_cancelled()

    def _first_failure(self) -> BaseException | None:
        for entry in sorted(self._entries.values(), key=lambda e: e.sequence):
            task = entry.task
            if task is not None and task.done() and not task.cancelled() and task.exception() is not None:
                return task.exception()
        return None

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - asyncio.get_running_loop().time(), 0.0)

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise BuildCancelledError("Build cancelled by caller")
        if self._deadline is not None and asyncio.get_running_loop().time() >= self._deadline:
            raise BuildCancelledError(f"Build deadline of {self._timeout}s exceeded")

    async def _shutdown(self) -> None:
        """Cancel whatever is still running and wait for it to unwind."""
        outstanding: list[asyncio.Future[object]] = [
            entry.task for entry in self._entries.values() if entry.task is not None and not entry.task.done()
        ]
        if self._cancel_waiter is not None:
            outstanding.append(self._cancel_waiter)
        for task in outstanding:
            task.cancel()
        if outstanding:
            await asyncio.gather(*outstanding, return_exceptions=True)
        # retrieve exceptions of failed tasks so asyncio does not log them as unhandled
        for entry in self._entries.values():
            if entry.task is not None and entry.task.done() and not entry.task.cancelled():
                entry.task.exception()

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _assemble(self, roots: list[NodeIdentity]) -> DependencyGraph:
        """Commit nodes and edges, nodes in depth-first declaration order.

        The same walk settles node kinds: the first reference to reach an
        identity fixes its kind (roots are overlays), and the first later
        reference that classifies it differently is reported as ambiguous.
        """
        order: list[NodeIdentity] = []
        paths: dict[NodeIdentity, tuple[NodeIdentity, ...]] = {}
        kinds: dict[NodeIdentity, NodeKind] = dict.fromkeys(roots, NodeKind.OVERLAY)
        for root in roots:
            stack: list[tuple[NodeIdentity, tuple[NodeIdentity, ...]]] = [(root, ())]
            while stack:
                identity, chain = stack.pop()
                if identity in paths:
                    continue
                path = (*chain, identity)
                paths[identity] = path
                order.append(identity)
                edges = self._entries[identity].edges
                for edge in edges:
                    self._settle_kind(edge, kinds, path)
                stack.extend((edge.target, path) for edge in reversed(edges))

        nodes = []
        for identity in order:
            node = self._entries[identity].node
            if node is None:
                raise RuntimeError(f"Discovery finished without loading {identity}")
            nodes.append(node)
        edges = [edge for identity in order for edge in self._entries[identity].edges]
        return DependencyGraph(nodes=nodes, edges=edges, roots=roots)

    def _settle_kind(
        self,
        edge: Edge,
        kinds: dict[NodeIdentity, NodeKind],
        path: tuple[NodeIdentity, ...],
    ) -> None:
        kind = self._resolver.classify(edge.target, edge.edge_type)
        settled = kinds.setdefault(edge.target, kind)
        if settled is not kind:
            raise AmbiguousReferenceError(
                f"{edge.target} is referenced as both {settled.value} and {kind.value}",
                raw_reference=edge.raw_reference,
                declared_by=edge.source,
                chain=path,
            )
