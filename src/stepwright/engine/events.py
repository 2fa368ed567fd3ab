"""Progress event definitions for workflow execution.

This module defines frozen dataclasses representing workflow execution events.
The engine passes them to an optional async ``event_callback`` as a run
progresses, so a CLI or UI can follow along without polling the state store.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from stepwright.engine.types import ActionKind, RunStatus, SkipReason

__all__ = [
    "WorkflowStarted",
    "StepStarted",
    "StepSkipped",
    "ActionPerformed",
    "StepCompleted",
    "StatePersisted",
    "WorkflowPaused",
    "WorkflowCompleted",
    "WorkflowFailed",
    "ProgressEvent",
    "EventCallback",
]


@dataclass(frozen=True, slots=True)
class WorkflowStarted:
    """Event emitted when a run starts or resumes.

    Attributes:
        workflow_identity: Identity of the definition being run.
        inputs: Caller inputs (empty when resuming).
        resumed: True when continuing from saved state.
        timestamp: Unix timestamp (defaults to current time).
    """

    workflow_identity: str
    inputs: dict[str, Any]
    resumed: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class StepStarted:
    """Event emitted when a step begins.

    Attributes:
        step_index: Index of the step.
        goal: The step's goal text.
        timestamp: Unix timestamp (defaults to current time).
    """

    step_index: int
    goal: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class StepSkipped:
    """Event emitted when a step is skipped without running actions."""

    step_index: int
    reason: SkipReason
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class ActionPerformed:
    """Event emitted for each action that took effect.

    Attributes:
        step_index: Step the action belongs to.
        kind: Kind of action.
        content: Resolved action content.
        detail: Outcome summary, e.g. "skipped (autonomous)" or "approved".
        timestamp: Unix timestamp (defaults to current time).
    """

    step_index: int
    kind: ActionKind
    content: str
    detail: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class StepCompleted:
    """Event emitted when a step finishes.

    Attributes:
        step_index: Index of the step.
        goto_target: Step the run jumps to next, if a goto fired.
        duration_ms: Execution duration in milliseconds.
        timestamp: Unix timestamp (defaults to current time).
    """

    step_index: int
    goto_target: int | None
    duration_ms: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class StatePersisted:
    """Event emitted after run state is saved to the store."""

    workflow_identity: str
    current_step_index: int
    status: RunStatus
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class WorkflowPaused:
    """Event emitted when a run pauses on a suspension request.

    Attributes:
        workflow_identity: Identity of the definition.
        next_step_index: Step the run will resume at.
        timestamp: Unix timestamp (defaults to current time).
    """

    workflow_identity: str
    next_step_index: int | None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class WorkflowCompleted:
    """Event emitted when a run reaches the end of its steps."""

    workflow_identity: str
    total_duration_ms: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class WorkflowFailed:
    """Event emitted when a run stops on a fatal error.

    Attributes:
        workflow_identity: Identity of the definition.
        step_index: Step the error escaped from, if known.
        error: Error message.
        timestamp: Unix timestamp (defaults to current time).
    """

    workflow_identity: str
    step_index: int | None
    error: str
    timestamp: float = field(default_factory=time.time)


# Type alias for all progress events
ProgressEvent = (
    WorkflowStarted
    | StepStarted
    | StepSkipped
    | ActionPerformed
    | StepCompleted
    | StatePersisted
    | WorkflowPaused
    | WorkflowCompleted
    | WorkflowFailed
)

EventCallback = Callable[[ProgressEvent], Awaitable[None]]
