# src/__init__.py — v1
"""paravault: vault ingestion and consistency engine."""

from paravault.version import __version__

__all__ = ["__version__"]
