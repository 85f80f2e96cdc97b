"""Entry point for `python -m kustograph`.

Usage:
    python -m kustograph --apps-dir ./apps list-root-apps
"""

from __future__ import annotations

from kustograph.cli import cli

cli()
