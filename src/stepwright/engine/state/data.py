"""Run state data structures.

This module defines the RunState dataclass, the snapshot of a workflow run
that is persisted after every step and read back to resume.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from stepwright.engine.types import RunStatus

__all__ = ["RunState", "utc_now"]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class RunState:
    """Progress of one workflow run.

    Owned by the engine running it; stores keep their own copies.

    Attributes:
        workflow_identity: Identity of the definition being run.
        current_step_index: 0 before any step ran, otherwise the last step
            visited (or the target of the last goto).
        next_step_index: Step the run continues at, None once finished.
        status: Lifecycle status.
        variables: Accumulated variable bindings.
        started_at: When the run was first started.
        last_updated_at: When the state was last changed.
        error: Message of the fatal error that stopped the run, if any.
    """

    workflow_identity: str
    current_step_index: int = 0
    next_step_index: int | None = None
    status: RunStatus = RunStatus.RUNNING
    variables: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utc_now)
    last_updated_at: datetime = field(default_factory=utc_now)
    error: str | None = None

    @property
    def is_finished(self) -> bool:
        """True once every step has run. Failed and paused runs can resume."""
        return self.status is RunStatus.COMPLETED

    def touch(self) -> None:
        self.last_updated_at = utc_now()

    def copy(self) -> RunState:
        """Deep copy, so the copy shares no variables with this state."""
        return RunState(
            workflow_identity=self.workflow_identity,
            current_step_index=self.current_step_index,
            next_step_index=self.next_step_index,
            status=self.status,
            variables=copy.deepcopy(self.variables),
            started_at=self.started_at,
            last_updated_at=self.last_updated_at,
            error=self.error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        return {
            "workflow_identity": self.workflow_identity,
            "current_step_index": self.current_step_index,
            "next_step_index": self.next_step_index,
            "status": self.status.value,
            "variables": copy.deepcopy(self.variables),
            "started_at": self.started_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunState:
        """Deserialize from dictionary.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the status or a timestamp is invalid.
        """
        next_step_index = data.get("next_step_index")
        return cls(
            workflow_identity=data["workflow_identity"],
            current_step_index=int(data["current_step_index"]),
            next_step_index=int(next_step_index) if next_step_index is not None else None,
            status=RunStatus(data["status"]),
            variables=dict(data.get("variables") or {}),
            started_at=datetime.fromisoformat(data["started_at"]),
            last_updated_at=datetime.fromisoformat(data["last_updated_at"]),
            error=data.get("error"),
        )
