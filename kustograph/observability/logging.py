"""Structured logging configuration using structlog.

Command output goes to stdout, so log lines are always written to stderr.
Each graph build binds a ``build_id`` into the context, which lets the log
lines of concurrent builds in one process be told apart.
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TextIO

import structlog

LOG_FORMATS = ("json", "console")


def setup_logging(level: str = "info", fmt: str = "json", stream: TextIO | None = None) -> None:
    """Configure structlog for JSON (or human-readable console) output to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer: structlog.types.Processor
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]


@contextmanager
def build_context(roots: Sequence[object]) -> Iterator[str]:
    """Bind a fresh ``build_id`` (and the root count) for the duration of a build."""
    build_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(build_id=build_id, root_count=len(roots)):
        yield build_id
