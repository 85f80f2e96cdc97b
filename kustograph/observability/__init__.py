"""Logging and metrics for kustograph."""
