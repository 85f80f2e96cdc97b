"""kustograph command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kustograph`` script).
"""

from kustograph.cli.main import cli

__all__ = ["cli"]
