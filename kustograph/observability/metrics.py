"""Prometheus metrics for graph builds and retrieval."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

nodes_loaded_total = Counter(
    "kustograph_nodes_loaded_total",
    "Nodes loaded into a dependency graph, by node kind.",
    ["kind"],
)

build_errors_total = Counter(
    "kustograph_build_errors_total",
    "Graph builds aborted by a structural error, by error kind.",
    ["error"],
)

build_duration_seconds = Histogram(
    "kustograph_build_duration_seconds",
    "Wall-clock duration of successful graph builds.",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

retrievals_total = Counter(
    "kustograph_retrievals_total",
    "Retrieval attempts, by backend and outcome.",
    ["backend", "outcome"],
)
