"""stepwright exception hierarchy.

Engine-level errors live in :mod:`stepwright.engine.errors`; this package
holds the root exception and the configuration error.

All exceptions can be imported from this package:
    from stepwright.exceptions import StepwrightError, ConfigError
"""

from __future__ import annotations

from stepwright.exceptions.base import StepwrightError
from stepwright.exceptions.config import ConfigError

__all__ = [
    "StepwrightError",
    "ConfigError",
]
