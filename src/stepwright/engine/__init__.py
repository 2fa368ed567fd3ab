"""Resumable workflow engine.

A workflow is an ordered list of ``<step>`` blocks written in markdown with
embedded tags (``<action>``, ``<ask>``, ``<output>``, ``<check>``,
``<goto>``, ``<invoke-workflow>``, ``<invoke-task>``). The engine runs the
steps in order, resolves ``{{variable}}`` tokens, evaluates guard
conditions, and persists its position after every step so a run can resume
in a later process.

Public API:
    WorkflowEngine: Runs one workflow and coordinates its state.
    StepExecutor: Runs a single step.
    VariableResolver: ``{{token}}`` substitution.
    ConditionEvaluator: Guard condition evaluation.
    FileDefinitionLoader: Loads workflow YAML files and markdown tasks.
    FileStateStore / MemoryStateStore: Run state persistence.
"""

from __future__ import annotations

from stepwright.engine.actions import (
    Action,
    Ask,
    Check,
    Goto,
    InvokeTask,
    InvokeWorkflow,
    Output,
    PlainAction,
)
from stepwright.engine.conditions import ConditionEvaluator, ConditionParser
from stepwright.engine.content import ContentParser, StepContent
from stepwright.engine.definition import Step, WorkflowDefinition
from stepwright.engine.engine import WorkflowEngine
from stepwright.engine.errors import (
    ConditionEvaluationError,
    DefinitionParseError,
    EngineError,
    NestedInvocationError,
    OutputRejectedError,
    StateCorruptionError,
    StateNotFoundError,
    UndefinedVariableError,
    WorkflowExecutionError,
    WorkflowMismatchError,
)
from stepwright.engine.events import EventCallback, ProgressEvent
from stepwright.engine.executor import ActionEffect, StepExecutor, StepOutcome
from stepwright.engine.filesystem import FileSystem, LocalFileSystem
from stepwright.engine.loader import DefinitionLoader, FileDefinitionLoader
from stepwright.engine.operator import Operator
from stepwright.engine.state import (
    FileStateStore,
    MemoryStateStore,
    RunState,
    StateStore,
)
from stepwright.engine.types import ActionKind, RunStatus, SkipReason
from stepwright.engine.variables import VariableResolver

__all__: list[str] = [
    "Action",
    "ActionEffect",
    "ActionKind",
    "Ask",
    "Check",
    "ConditionEvaluationError",
    "ConditionEvaluator",
    "ConditionParser",
    "ContentParser",
    "DefinitionLoader",
    "DefinitionParseError",
    "EngineError",
    "EventCallback",
    "FileDefinitionLoader",
    "FileStateStore",
    "FileSystem",
    "Goto",
    "InvokeTask",
    "InvokeWorkflow",
    "LocalFileSystem",
    "MemoryStateStore",
    "NestedInvocationError",
    "Operator",
    "Output",
    "OutputRejectedError",
    "PlainAction",
    "ProgressEvent",
    "RunState",
    "RunStatus",
    "SkipReason",
    "StateCorruptionError",
    "StateNotFoundError",
    "StateStore",
    "Step",
    "StepContent",
    "StepExecutor",
    "StepOutcome",
    "UndefinedVariableError",
    "VariableResolver",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowExecutionError",
    "WorkflowMismatchError",
]
