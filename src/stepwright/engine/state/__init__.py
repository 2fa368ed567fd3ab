"""Run state persistence for resumable workflows.

This module provides the run state snapshot and the store interfaces and
implementations used to save and restore it.
"""

from __future__ import annotations

from stepwright.engine.state.data import RunState, utc_now
from stepwright.engine.state.store import (
    FileStateStore,
    MemoryStateStore,
    StateStore,
)

__all__: list[str] = [
    "FileStateStore",
    "MemoryStateStore",
    "RunState",
    "StateStore",
    "utc_now",
]
