# src/__init__.py — v1
"""neuroadapt: adaptive assignment generation for neurodivergent learners."""

from neuroadapt.version import __version__

__all__ = ["__version__"]
