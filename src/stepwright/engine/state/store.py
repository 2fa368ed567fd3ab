"""Run state store implementations.

This module provides the StateStore protocol and implementations for
persisting and loading run state, one snapshot per workflow identity.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path
from typing import Protocol

from stepwright.engine.errors import StateCorruptionError
from stepwright.engine.state.data import RunState
from stepwright.logging import get_logger
from stepwright.utils.atomic import atomic_write_json

__all__ = [
    "StateStore",
    "FileStateStore",
    "MemoryStateStore",
]

logger = get_logger(__name__)

# First 12 hex chars of SHA-256 keep file names short while separating
# identities that slugify to the same text.
IDENTITY_HASH_LENGTH = 12
MAX_SLUG_LENGTH = 60


class StateStore(Protocol):
    """Protocol for run state persistence.

    Implementations must make ``save`` atomic: a concurrent reader sees the
    previous snapshot or the new one, never a partial write.
    """

    async def save(self, state: RunState) -> None:
        """Persist a snapshot of ``state``."""
        ...

    async def load(self, workflow_identity: str) -> RunState | None:
        """Load the snapshot for a workflow, or None if there is none."""
        ...

    async def clear(self, workflow_identity: str) -> None:
        """Remove the snapshot for a workflow."""
        ...


class FileStateStore:
    """File-based state store with atomic writes.

    Stores one JSON file per workflow identity under a base directory.
    Uses the atomic write pattern (temp file + rename) from
    :mod:`stepwright.utils.atomic`.
    """

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def path_for(self, workflow_identity: str) -> Path:
        """File holding the snapshot for ``workflow_identity``."""
        slug = re.sub(r"[^A-Za-z0-9_.-]+", "-", workflow_identity).strip("-.")
        slug = slug[-MAX_SLUG_LENGTH:] or "workflow"
        digest = hashlib.sha256(workflow_identity.encode()).hexdigest()
        return self._base_path / f"{slug}-{digest[:IDENTITY_HASH_LENGTH]}.json"

    async def save(self, state: RunState) -> None:
        """Save state with an atomic write.

        Note: Uses synchronous file I/O. State files are small and local, so
        the write completes well within one step.
        """
        path = self.path_for(state.workflow_identity)
        atomic_write_json(path, state.to_dict(), mkdir=True)
        logger.debug(
            "state_saved",
            path=str(path),
            status=state.status.value,
            current_step_index=state.current_step_index,
        )

    async def load(self, workflow_identity: str) -> RunState | None:
        """Load state from file.

        Raises:
            StateCorruptionError: If the file is not valid JSON, lacks
                required fields or belongs to another identity.
        """
        path = self.path_for(workflow_identity)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StateCorruptionError(str(path), f"invalid JSON ({e})") from e
        if not isinstance(data, dict):
            raise StateCorruptionError(str(path), "expected a JSON object")

        try:
            state = RunState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateCorruptionError(
                str(path), f"{type(e).__name__}: {e}"
            ) from e

        if state.workflow_identity != workflow_identity:
            raise StateCorruptionError(
                str(path),
                f"recorded identity '{state.workflow_identity}' does not match "
                f"'{workflow_identity}'",
            )
        return state

    async def clear(self, workflow_identity: str) -> None:
        """Remove the state file for a workflow."""
        self.path_for(workflow_identity).unlink(missing_ok=True)


class MemoryStateStore:
    """In-memory state store for testing and embedding.

    Copies on save and on load, so callers never share state with the store.
    Not suitable for crash recovery: data is lost on process exit.
    """

    def __init__(self) -> None:
        self._storage: dict[str, RunState] = {}
        self.save_count = 0

    async def save(self, state: RunState) -> None:
        self._storage[state.workflow_identity] = state.copy()
        self.save_count += 1

    async def load(self, workflow_identity: str) -> RunState | None:
        state = self._storage.get(workflow_identity)
        return state.copy() if state is not None else None

    async def clear(self, workflow_identity: str) -> None:
        self._storage.pop(workflow_identity, None)
