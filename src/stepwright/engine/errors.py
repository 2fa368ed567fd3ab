"""Error types for the stepwright workflow engine.

Exception Hierarchy:
    EngineError (base for all engine errors)
    ├── DefinitionParseError (malformed definition or step markup)
    └── WorkflowExecutionError (fatal run-time failures, carry step index)
        ├── UndefinedVariableError ({{token}} with no value and no default)
        ├── ConditionEvaluationError (malformed or unevaluable guard)
        ├── WorkflowMismatchError (resume state belongs to another definition)
        ├── NestedInvocationError (child workflow/task failed)
        ├── OutputRejectedError (operator declined a generated output)
        ├── StateNotFoundError (nothing persisted to resume from)
        └── StateCorruptionError (persisted state cannot be read back)

Every execution error renders as its message followed by the step it
happened in and a resolution hint, so the text printed by the CLI is enough
to fix the definition or environment and resume the run.
"""

from __future__ import annotations

from collections.abc import Iterable

from stepwright.exceptions import StepwrightError

__all__ = [
    "EngineError",
    "DefinitionParseError",
    "WorkflowExecutionError",
    "UndefinedVariableError",
    "ConditionEvaluationError",
    "WorkflowMismatchError",
    "NestedInvocationError",
    "OutputRejectedError",
    "StateNotFoundError",
    "StateCorruptionError",
]


class EngineError(StepwrightError):
    """Base exception for all engine errors."""


class DefinitionParseError(EngineError):
    """Raised when a workflow definition or step markup is malformed.

    Parse errors are detected while loading, before any step runs.

    Attributes:
        message: Human-readable error message.
        source: Path or identity of the definition being parsed.
        step_index: Step whose markup is malformed (if known).
        snippet: Offending fragment of markup (if known).
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        step_index: int | None = None,
        snippet: str | None = None,
    ) -> None:
        self.source = source
        self.step_index = step_index
        self.snippet = snippet
        parts = [message]
        if step_index is not None:
            parts.append(f"Step: {step_index}")
        if snippet:
            parts.append(f"Markup: {snippet}")
        if source:
            parts.append(f"Definition: {source}")
        super().__init__("\n".join(parts))


class WorkflowExecutionError(EngineError):
    """Fatal error raised while a workflow is running.

    Attributes:
        message: Human-readable error message (without step or hint).
        step_index: Index of the step being executed, attached by the
            executor when the error leaves a step.
        detail: The offending action content or condition text.
        hint: Suggested resolution.
    """

    default_hint: str | None = None

    def __init__(
        self,
        message: str,
        step_index: int | None = None,
        detail: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.step_index = step_index
        self.detail = detail
        self.hint = hint if hint is not None else self.default_hint
        super().__init__(message)

    def attach_step(self, step_index: int) -> WorkflowExecutionError:
        """Record the step the error escaped from, keeping an existing one."""
        if self.step_index is None:
            self.step_index = step_index
        return self

    def __str__(self) -> str:
        lines = []
        if self.step_index is not None:
            lines.append(f"Step {self.step_index}: {self.message}")
        else:
            lines.append(self.message)
        if self.detail:
            lines.append(f"  In: {self.detail}")
        if self.hint:
            lines.append(f"  Resolution: {self.hint}")
        return "\n".join(lines)


class UndefinedVariableError(WorkflowExecutionError):
    """Raised when a ``{{token}}`` has no value and no default.

    Attributes:
        variable: Dotted path that could not be resolved.
        available_keys: Top-level binding keys at the time of resolution.
    """

    def __init__(
        self,
        variable: str,
        available_keys: Iterable[str],
        text: str | None = None,
        step_index: int | None = None,
    ) -> None:
        self.variable = variable
        self.available_keys = tuple(sorted(available_keys))
        available = ", ".join(self.available_keys) if self.available_keys else "(none)"
        super().__init__(
            f"Undefined variable: {{{{{variable}}}}}. Available variables: {available}",
            step_index=step_index,
            detail=text,
            hint=(
                f"Declare '{variable.split('.')[0]}' in the workflow variables, "
                f"pass it as an input, or give the token a default: "
                f"{{{{{variable}|value}}}}"
            ),
        )


class ConditionEvaluationError(WorkflowExecutionError):
    """Raised when a guard condition is malformed or cannot be evaluated.

    Attributes:
        condition: The raw condition text as written in the definition.
        reason: What went wrong.
    """

    default_hint = (
        "Use comparisons (==, !=, <, >, <=, >=), AND/OR/NOT, 'file exists <path>', "
        "'<var> is defined', '<var> is true', '<var> is false' or '<var> is empty'. "
        "Parentheses do not group; AND and OR are applied left to right."
    )

    def __init__(
        self,
        reason: str,
        condition: str,
        step_index: int | None = None,
    ) -> None:
        self.condition = condition
        self.reason = reason
        super().__init__(
            f"Cannot evaluate condition: {reason}",
            step_index=step_index,
            detail=condition,
        )


class WorkflowMismatchError(WorkflowExecutionError):
    """Raised when resuming with state that belongs to another definition.

    Attributes:
        expected_identity: Identity of the engine's own definition.
        actual_identity: Identity recorded in the supplied state.
    """

    def __init__(self, expected_identity: str, actual_identity: str) -> None:
        self.expected_identity = expected_identity
        self.actual_identity = actual_identity
        super().__init__(
            f"Run state belongs to workflow '{actual_identity}', "
            f"not '{expected_identity}'",
            hint=(
                "Resume the run with the workflow it was started from, "
                "or start a new run with execute()."
            ),
        )


class NestedInvocationError(WorkflowExecutionError):
    """Raised when an invoked child workflow or task fails.

    The child's error is available both as ``child_error`` and as
    ``__cause__``.

    Attributes:
        reference: The workflow or task reference that was invoked.
        kind: "workflow" or "task".
        child_error: The exception raised by the child engine.
    """

    def __init__(
        self,
        reference: str,
        kind: str,
        child_error: BaseException,
        step_index: int | None = None,
    ) -> None:
        self.reference = reference
        self.kind = kind
        self.child_error = child_error
        child_text = str(child_error).replace("\n", "\n  ")
        super().__init__(
            f"Nested {kind} '{reference}' failed: {child_text}",
            step_index=step_index,
            hint=(
                f"Fix the {kind} and resume this run; the child keeps its own "
                f"run state."
            ),
        )


class OutputRejectedError(WorkflowExecutionError):
    """Raised when the operator declines a generated output."""

    default_hint = "Adjust the inputs or definition and resume the run to retry the step."


class StateNotFoundError(WorkflowExecutionError):
    """Raised when there is no persisted state for a workflow."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(
            f"No saved run state for workflow '{identity}'",
            hint="Start the workflow with execute() (or 'stepwright run').",
        )


class StateCorruptionError(WorkflowExecutionError):
    """Raised when a persisted state snapshot cannot be read back.

    Attributes:
        location: Where the snapshot lives (file path or store key).
        reason: Why it could not be read.
    """

    def __init__(self, location: str, reason: str) -> None:
        self.location = location
        self.reason = reason
        super().__init__(
            f"Corrupted run state at {location}: {reason}",
            hint="Delete the state file to start over, or restore it from a backup.",
        )
