"""stepwright: a resumable, step-by-step workflow execution engine."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
