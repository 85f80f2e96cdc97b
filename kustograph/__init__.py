"""kustograph -- dependency graph engine for Kustomize overlay repositories."""

__version__ = "0.1.0"
