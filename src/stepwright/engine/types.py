"""Foundational enums shared across the workflow engine."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ActionKind",
    "RunStatus",
    "SkipReason",
]


class ActionKind(str, Enum):
    """Kind of action declared inside a step's markup.

    Each kind corresponds to one action variant in
    :mod:`stepwright.engine.definition` and one branch of the executor's
    dispatch.
    """

    ACTION = "action"
    ASK = "ask"
    OUTPUT = "output"
    GOTO = "goto"
    INVOKE_WORKFLOW = "invoke-workflow"
    INVOKE_TASK = "invoke-task"


class RunStatus(str, Enum):
    """Lifecycle status of a workflow run.

    ``RUNNING`` may be persisted mid-run; ``PAUSED``, ``COMPLETED`` and
    ``ERROR`` are the states a run stops in.
    """

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class SkipReason(str, Enum):
    """Why a step was skipped without running its actions."""

    OPTIONAL = "optional"  # autonomous mode skips optional steps
    GUARD = "guard"  # step's if="..." evaluated false
