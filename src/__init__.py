# src/__init__.py — v1
"""insurag — query orchestration core for insurance question answering."""

from insurag.version import __version__

__all__ = ["__version__"]
