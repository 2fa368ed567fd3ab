"""Step execution.

The :class:`StepExecutor` runs one :class:`~stepwright.engine.definition.Step`:
it evaluates the step's guard, then performs each action and check in
declared order. It never decides which step runs next; a ``<goto>`` is
reported back to the engine through :attr:`StepOutcome.goto_target`.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, assert_never

from stepwright.engine.actions import (
    Action,
    Ask,
    Goto,
    InvokeTask,
    InvokeWorkflow,
    Output,
    PlainAction,
)
from stepwright.engine.conditions import ConditionEvaluator
from stepwright.engine.definition import Step
from stepwright.engine.errors import (
    EngineError,
    NestedInvocationError,
    OutputRejectedError,
    WorkflowExecutionError,
)
from stepwright.engine.events import ActionPerformed, EventCallback
from stepwright.engine.filesystem import FileSystem
from stepwright.engine.operator import Operator
from stepwright.engine.types import ActionKind, SkipReason
from stepwright.engine.variables import VariableResolver
from stepwright.logging import get_logger

if TYPE_CHECKING:
    from stepwright.engine.engine import WorkflowEngine

__all__ = [
    "ActionEffect",
    "StepOutcome",
    "NestedEngineFactory",
    "StepExecutor",
]

logger = get_logger(__name__)

# Builds the child engine for an <invoke-workflow>/<invoke-task> reference,
# given the parent's variables at the time of the call.
NestedEngineFactory = Callable[[str, ActionKind, dict[str, Any]], "WorkflowEngine"]


@dataclass(frozen=True, slots=True)
class ActionEffect:
    """Record of one action that took effect.

    Attributes:
        kind: Kind of action.
        content: Resolved content.
        detail: Outcome summary (answer stored, output approved, ...).
    """

    kind: ActionKind
    content: str
    detail: str | None = None


@dataclass(slots=True)
class StepOutcome:
    """Result of executing one step.

    Attributes:
        step_index: Index of the step.
        variables: Bindings after the step (a new mapping; the input is
            left untouched).
        skipped: True if the step's actions did not run.
        skip_reason: Why the step was skipped.
        goto_target: Target of the last goto that fired, if any.
        effects: Actions that took effect, in order.
        duration_ms: Execution duration in milliseconds.
    """

    step_index: int
    variables: dict[str, Any]
    skipped: bool = False
    skip_reason: SkipReason | None = None
    goto_target: int | None = None
    effects: list[ActionEffect] = field(default_factory=list)
    duration_ms: int = 0


class StepExecutor:
    """Executes single steps for a :class:`WorkflowEngine`.

    Args:
        conditions: Evaluator for step, action and check conditions.
        filesystem: Where template outputs are written.
        root_context: Base directory for relative output files.
        operator: Human in the loop; required in normal mode when a step
            asks a question or produces an output.
        autonomous_mode: Skip optional steps and asks, auto-approve outputs.
        nested_engine_factory: Builds child engines for invoke actions.
        event_callback: Receives an ActionPerformed event per effect.
        resolver: Variable resolver (a new one by default).
    """

    def __init__(
        self,
        conditions: ConditionEvaluator,
        filesystem: FileSystem,
        root_context: Path,
        *,
        operator: Operator | None = None,
        autonomous_mode: bool = False,
        nested_engine_factory: NestedEngineFactory | None = None,
        event_callback: EventCallback | None = None,
        resolver: VariableResolver | None = None,
    ) -> None:
        self._conditions = conditions
        self._filesystem = filesystem
        self._root_context = root_context
        self._operator = operator
        self._autonomous_mode = autonomous_mode
        self._nested_engine_factory = nested_engine_factory
        self._event_callback = event_callback
        self._resolver = resolver if resolver is not None else VariableResolver()

    @property
    def autonomous_mode(self) -> bool:
        return self._autonomous_mode

    async def execute_step(
        self,
        step: Step,
        variables: Mapping[str, Any],
    ) -> StepOutcome:
        """Execute ``step`` against ``variables``.

        Order of operations: autonomous-mode skip of optional steps, guard,
        actions in declared order, then checks in declared order.

        Args:
            step: Step to execute.
            variables: Current bindings. Not modified.

        Returns:
            The step outcome, holding the updated bindings.

        Raises:
            WorkflowExecutionError: Any run-time failure, with the step index
                attached. Errors that are not engine errors are wrapped.
            DefinitionParseError: If the step's markup is malformed.
        """
        outcome = StepOutcome(step_index=step.index, variables=dict(variables))
        start = time.perf_counter()
        try:
            await self._execute(step, outcome)
        except WorkflowExecutionError as e:
            e.attach_step(step.index)
            raise
        except EngineError:
            raise
        except Exception as e:
            raise WorkflowExecutionError(
                f"Step failed with {type(e).__name__}: {e}",
                step_index=step.index,
            ) from e
        outcome.duration_ms = int((time.perf_counter() - start) * 1000)
        return outcome

    async def _execute(self, step: Step, outcome: StepOutcome) -> None:
        if self._autonomous_mode and step.optional:
            logger.info("step_skipped", step_index=step.index, reason="optional")
            outcome.skipped = True
            outcome.skip_reason = SkipReason.OPTIONAL
            return

        if step.guard is not None and not await self._conditions.evaluate(
            step.guard, outcome.variables
        ):
            logger.info(
                "step_skipped", step_index=step.index, reason="guard", guard=step.guard
            )
            outcome.skipped = True
            outcome.skip_reason = SkipReason.GUARD
            return

        parsed = step.parse()
        for action in parsed.actions:
            await self._run_action(action, step, outcome)

        for check in parsed.checks:
            if not await self._conditions.evaluate(check.condition, outcome.variables):
                logger.debug(
                    "check_not_met", step_index=step.index, condition=check.condition
                )
                continue
            for action in check.actions:
                await self._run_action(action, step, outcome)

    async def _run_action(
        self,
        action: Action,
        step: Step,
        outcome: StepOutcome,
    ) -> None:
        variables = outcome.variables
        if action.condition is not None and not await self._conditions.evaluate(
            action.condition, variables
        ):
            logger.debug(
                "action_skipped",
                step_index=step.index,
                kind=action.kind.value,
                condition=action.condition,
            )
            return

        match action:
            case PlainAction():
                content = self._resolver.resolve(action.content, variables)
                logger.info("action", step_index=step.index, content=content)
                await self._record(outcome, action.kind, content)

            case Ask():
                prompt = self._resolver.resolve(action.content, variables)
                if self._autonomous_mode:
                    logger.info(
                        "ask_skipped_autonomous", step_index=step.index, prompt=prompt
                    )
                    await self._record(
                        outcome, action.kind, prompt, "skipped (autonomous)"
                    )
                    return
                answer = await self._require_operator(prompt).ask(
                    prompt, step_index=step.index
                )
                if action.elicit and (answer is None or not answer.strip()):
                    raise WorkflowExecutionError(
                        "Required input was not provided",
                        detail=prompt,
                        hint="Answer the prompt, then resume the run.",
                    )
                if action.var is not None and answer is not None:
                    variables[action.var] = answer
                detail = f"stored in '{action.var}'" if action.var else "answered"
                await self._record(outcome, action.kind, prompt, detail)

            case Output():
                content = self._resolver.resolve(action.content, variables)
                file = (
                    self._resolver.resolve(action.file, variables)
                    if action.file is not None
                    else None
                )
                if self._autonomous_mode:
                    detail = "auto-approved"
                elif await self._require_operator(content).approve(
                    content, step_index=step.index, file=file
                ):
                    detail = "approved"
                else:
                    raise OutputRejectedError(
                        "Output was rejected by the operator",
                        detail=file or content,
                    )
                if file is not None:
                    path = self._resolve_path(file)
                    await self._filesystem.write_text(path, content)
                    detail = f"{detail}, written to {path}"
                logger.info("output", step_index=step.index, file=file, detail=detail)
                await self._record(outcome, action.kind, content, detail)

            case Goto(step=target):
                logger.info("goto", step_index=step.index, target=target)
                outcome.goto_target = target
                await self._record(outcome, action.kind, action.content)

            case InvokeWorkflow() | InvokeTask():
                reference = self._resolver.resolve(action.content, variables)
                await self._invoke(reference, action.kind, step, variables)
                await self._record(outcome, action.kind, reference, "completed")

            case _:
                assert_never(action)

    async def _invoke(
        self,
        reference: str,
        kind: ActionKind,
        step: Step,
        variables: dict[str, Any],
    ) -> None:
        if self._nested_engine_factory is None:
            raise WorkflowExecutionError(
                f"Cannot invoke '{reference}': nested invocation is not available",
                detail=reference,
            )
        label = "workflow" if kind is ActionKind.INVOKE_WORKFLOW else "task"
        child = self._nested_engine_factory(reference, kind, dict(variables))

        logger.info(f"invoking_{label}", step_index=step.index, reference=reference)
        try:
            await child.execute()
        except Exception as e:
            raise NestedInvocationError(
                reference, label, e, step_index=step.index
            ) from e
        logger.info(f"{label}_completed", step_index=step.index, reference=reference)

    def _require_operator(self, content: str) -> Operator:
        if self._operator is None:
            raise WorkflowExecutionError(
                "No operator is available to answer a prompt or approve an output",
                detail=content,
                hint="Provide an operator to the engine or enable autonomous mode.",
            )
        return self._operator

    def _resolve_path(self, file: str) -> Path:
        path = Path(file)
        return path if path.is_absolute() else self._root_context / path

    async def _record(
        self,
        outcome: StepOutcome,
        kind: ActionKind,
        content: str,
        detail: str | None = None,
    ) -> None:
        outcome.effects.append(ActionEffect(kind=kind, content=content, detail=detail))
        if self._event_callback is not None:
            await self._event_callback(
                ActionPerformed(
                    step_index=outcome.step_index,
                    kind=kind,
                    content=content,
                    detail=detail,
                )
            )
