"""Workflow engine: the run-state coordinator.

The :class:`WorkflowEngine` owns one run of one workflow definition. It
drives the step loop, persists :class:`RunState` after every step, honours
suspension requests and resumes from saved state.

Lifecycle::

    initialized --execute()/resume_from_state()--> running
    running --all steps done--> completed
    running --request_suspend()--> paused
    running --fatal error--> error

Example:
    ```python
    engine = WorkflowEngine(
        "workflows/create-prd/workflow.yaml",
        loader=FileDefinitionLoader(Path.cwd()),
        store=FileStateStore(".stepwright/state"),
        operator=my_operator,
    )
    state = await engine.execute({"project_name": "Atlas"})

    # later, in a new process
    state = await engine.resume()
    ```
"""

from __future__ import annotations

import copy
import time
from collections.abc import Mapping
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stepwright.engine.conditions import ConditionEvaluator
from stepwright.engine.content import ContentParser
from stepwright.engine.definition import WorkflowDefinition
from stepwright.engine.errors import (
    StateNotFoundError,
    WorkflowExecutionError,
    WorkflowMismatchError,
)
from stepwright.engine.events import (
    EventCallback,
    ProgressEvent,
    StatePersisted,
    StepCompleted,
    StepSkipped,
    StepStarted,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowPaused,
    WorkflowStarted,
)
from stepwright.engine.executor import StepExecutor
from stepwright.engine.filesystem import FileSystem, LocalFileSystem
from stepwright.engine.loader import DefinitionLoader, FileDefinitionLoader
from stepwright.engine.operator import Operator
from stepwright.engine.state import FileStateStore, RunState, StateStore
from stepwright.engine.types import ActionKind, RunStatus
from stepwright.engine.variables import VariableResolver
from stepwright.logging import get_logger

if TYPE_CHECKING:
    from stepwright.config import StepwrightConfig

__all__ = ["WorkflowEngine", "BUILTIN_VARIABLES"]

logger = get_logger(__name__)

# Variables every run gets, overriding declared defaults.
BUILTIN_VARIABLES = ("project-root", "date", "workflow")

# Child lifecycle events stay internal to the invoking step.
_CHILD_LIFECYCLE_EVENTS = (
    WorkflowStarted,
    WorkflowCompleted,
    WorkflowPaused,
    WorkflowFailed,
)


class WorkflowEngine:
    """Runs a workflow definition step by step with resumable state.

    Args:
        reference: Workflow reference understood by ``loader`` (usually a
            path, relative to ``root_context``).
        loader: Loads the definition.
        store: Persists run state.
        operator: Human in the loop. Not needed in autonomous mode.
        filesystem: File capability for file predicates and template
            outputs. Defaults to the local disk.
        autonomous_mode: "YOLO" mode: optional steps and asks are skipped,
            outputs are auto-approved. State is still saved after every step.
        root_context: Base directory for relative paths. Defaults to the
            working directory.
        default_variables: Lowest-priority variable defaults (configuration).
        event_callback: Async callable receiving progress events.
        inherited_variables: Bindings passed down by an invoking parent run.
        invocation_chain: Identities of the runs that invoked this one.
    """

    def __init__(
        self,
        reference: str,
        *,
        loader: DefinitionLoader,
        store: StateStore,
        operator: Operator | None = None,
        filesystem: FileSystem | None = None,
        autonomous_mode: bool = False,
        root_context: Path | None = None,
        default_variables: Mapping[str, Any] | None = None,
        event_callback: EventCallback | None = None,
        inherited_variables: Mapping[str, Any] | None = None,
        invocation_chain: tuple[str, ...] = (),
    ) -> None:
        self._reference = reference
        self._loader = loader
        self._store = store
        self._operator = operator
        self._filesystem = filesystem if filesystem is not None else LocalFileSystem()
        self._autonomous_mode = autonomous_mode
        self._root_context = root_context if root_context is not None else Path.cwd()
        self._default_variables = dict(default_variables or {})
        self._event_callback = event_callback
        self._inherited_variables = dict(inherited_variables or {})
        self._invocation_chain = invocation_chain

        self._identity = loader.identity_of(reference)
        self._definition: WorkflowDefinition | None = None
        self._state: RunState | None = None
        self._suspend_requested = False
        self._log = logger.bind(workflow=self._identity)

        self._parser = ContentParser()
        resolver = VariableResolver()
        self._executor = StepExecutor(
            ConditionEvaluator(self._filesystem, self._root_context, resolver),
            self._filesystem,
            self._root_context,
            operator=operator,
            autonomous_mode=autonomous_mode,
            nested_engine_factory=self._build_nested_engine,
            event_callback=event_callback,
            resolver=resolver,
        )

    @classmethod
    def from_config(
        cls,
        reference: str,
        config: StepwrightConfig,
        *,
        operator: Operator | None = None,
        autonomous_mode: bool | None = None,
        event_callback: EventCallback | None = None,
        store: StateStore | None = None,
    ) -> WorkflowEngine:
        """Build an engine wired from configuration.

        Uses a :class:`FileDefinitionLoader` rooted at ``config.root_context``
        and, unless ``store`` is given, a :class:`FileStateStore` under
        ``config.state_dir``. ``autonomous_mode`` overrides the configured
        value when not None.
        """
        root_context = config.root_context
        return cls(
            reference,
            loader=FileDefinitionLoader(root_context),
            store=store if store is not None else FileStateStore(config.resolved_state_dir),
            operator=operator,
            autonomous_mode=(
                config.autonomous_mode if autonomous_mode is None else autonomous_mode
            ),
            root_context=root_context,
            default_variables=config.variables,
            event_callback=event_callback,
        )

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def autonomous_mode(self) -> bool:
        return self._autonomous_mode

    @property
    def definition(self) -> WorkflowDefinition | None:
        """The loaded definition (None before execute/resume)."""
        return self._definition

    @property
    def state(self) -> RunState | None:
        """The in-memory run state (None before execute/resume)."""
        return self._state

    def request_suspend(self) -> None:
        """Ask the run to pause before its next step.

        The step in progress finishes and is persisted first. The run then
        stops with status ``paused`` and can be continued with
        :meth:`resume`.

        Another process can ask the same thing by saving the run's state with
        status ``paused`` (see :meth:`pause_saved`); the engine checks the
        store after every step.
        """
        self._log.info("suspend_requested")
        self._suspend_requested = True

    async def execute(self, inputs: Mapping[str, Any] | None = None) -> RunState:
        """Start a new run from the first step.

        Variables are seeded from, lowest to highest priority: configuration
        defaults, the definition's declared variables, variables inherited
        from an invoking run, the built-ins (``project-root``, ``date``,
        ``workflow``) and ``inputs``.

        Args:
            inputs: Caller-supplied variables.

        Returns:
            The final run state (completed or paused).

        Raises:
            DefinitionParseError: If the definition is malformed. Raised
                before any state is created or persisted.
            WorkflowExecutionError: On any fatal run-time error, after the
                state has been persisted with status ``error``.
        """
        definition = await self._load_definition()
        variables = self._seed_variables(definition, inputs or {})

        self._state = RunState(
            workflow_identity=self._identity,
            current_step_index=0,
            next_step_index=definition.first_index,
            status=RunStatus.RUNNING,
            variables=variables,
        )
        self._suspend_requested = False
        self._log.info(
            "workflow_started",
            name=definition.name,
            steps=definition.step_indices,
            autonomous_mode=self._autonomous_mode,
        )
        await self._emit(
            WorkflowStarted(workflow_identity=self._identity, inputs=dict(inputs or {}))
        )
        return await self._run(definition)

    async def resume_from_state(self, state: RunState) -> RunState:
        """Continue a run from a saved state.

        The identity check happens before anything else; on mismatch no
        state, in memory or persisted, is changed. Steps before the saved
        position are not re-run: the run continues at
        ``state.next_step_index`` (or the step after
        ``state.current_step_index`` when the state has none).

        Raises:
            WorkflowMismatchError: If the state belongs to another workflow.
            DefinitionParseError: If the definition is malformed.
            WorkflowExecutionError: On any fatal run-time error.
        """
        if state.workflow_identity != self._identity:
            raise WorkflowMismatchError(self._identity, state.workflow_identity)

        definition = await self._load_definition()
        restored = state.copy()
        if restored.next_step_index is None and restored.status is not RunStatus.COMPLETED:
            restored.next_step_index = definition.next_index_after(
                restored.current_step_index
            )
        restored.status = RunStatus.RUNNING
        restored.error = None
        restored.touch()

        self._state = restored
        self._suspend_requested = False
        self._log.info(
            "workflow_resumed",
            current_step_index=restored.current_step_index,
            next_step_index=restored.next_step_index,
        )
        await self._emit(
            WorkflowStarted(workflow_identity=self._identity, inputs={}, resumed=True)
        )
        return await self._run(definition)

    async def resume(self) -> RunState:
        """Resume from the state persisted for this workflow.

        Raises:
            StateNotFoundError: If the store has no state for this workflow.
        """
        state = await self._store.load(self._identity)
        if state is None:
            raise StateNotFoundError(self._identity)
        return await self.resume_from_state(state)

    async def pause_saved(self) -> RunState:
        """Mark the saved run of this workflow as paused.

        Only a ``running`` state changes; a run executing in another process
        stops before its next step. Completed, failed and already paused
        states are returned unchanged.

        Raises:
            StateNotFoundError: If the store has no state for this workflow.
        """
        state = await self._store.load(self._identity)
        if state is None:
            raise StateNotFoundError(self._identity)
        if state.status is RunStatus.RUNNING:
            state.status = RunStatus.PAUSED
            state.touch()
            await self._store.save(state)
            self._log.info("run_marked_paused", next_step_index=state.next_step_index)
        return state

    async def _load_definition(self) -> WorkflowDefinition:
        definition = await self._loader.load(self._reference)
        definition.parse_all(self._parser)
        self._definition = definition
        return definition

    def _seed_variables(
        self,
        definition: WorkflowDefinition,
        inputs: Mapping[str, Any],
    ) -> dict[str, Any]:
        variables: dict[str, Any] = {}
        variables.update(copy.deepcopy(self._default_variables))
        variables.update(copy.deepcopy(definition.variables))
        variables.update(copy.deepcopy(self._inherited_variables))
        variables.update(
            {
                "project-root": str(self._root_context),
                "date": date.today().isoformat(),
                "workflow": definition.name,
            }
        )
        variables.update(copy.deepcopy(dict(inputs)))
        return variables

    async def _run(self, definition: WorkflowDefinition) -> RunState:
        state = self._require_state()
        start = time.perf_counter()

        try:
            await self._persist()
            while state.next_step_index is not None:
                if self._suspend_requested:
                    return await self._pause()

                step = definition.get_step(state.next_step_index)
                if step is None:
                    raise WorkflowExecutionError(
                        f"Step {state.next_step_index} does not exist",
                        hint=(
                            f"Available steps: {definition.step_indices}. The "
                            "definition may have changed since the state was saved."
                        ),
                    )

                self._log.info("step_started", step_index=step.index, goal=step.goal)
                await self._emit(StepStarted(step_index=step.index, goal=step.goal))
                outcome = await self._executor.execute_step(step, state.variables)

                target = outcome.goto_target
                if target is not None and definition.get_step(target) is None:
                    raise WorkflowExecutionError(
                        f"Invalid goto target: step {target} does not exist",
                        step_index=step.index,
                        hint=f"Available steps: {definition.step_indices}",
                    )

                state.variables = outcome.variables
                if target is not None:
                    state.current_step_index = target
                    state.next_step_index = target
                else:
                    state.current_step_index = step.index
                    state.next_step_index = definition.next_index_after(step.index)

                if outcome.skipped and outcome.skip_reason is not None:
                    await self._emit(
                        StepSkipped(step_index=step.index, reason=outcome.skip_reason)
                    )
                self._log.info(
                    "step_completed",
                    step_index=step.index,
                    skipped=outcome.skipped,
                    goto_target=target,
                    duration_ms=outcome.duration_ms,
                )
                await self._emit(
                    StepCompleted(
                        step_index=step.index,
                        goto_target=target,
                        duration_ms=outcome.duration_ms,
                    )
                )
                # Checked before our own save overwrites the stored status.
                if await self._pause_recorded():
                    self._suspend_requested = True
                await self._persist()

            state.status = RunStatus.COMPLETED
            await self._persist()
        except Exception as e:
            await self._fail(e)
            raise

        total_duration_ms = int((time.perf_counter() - start) * 1000)
        self._log.info(
            "workflow_completed",
            current_step_index=state.current_step_index,
            total_duration_ms=total_duration_ms,
        )
        await self._emit(
            WorkflowCompleted(
                workflow_identity=self._identity,
                total_duration_ms=total_duration_ms,
            )
        )
        return state

    async def _pause_recorded(self) -> bool:
        """True when the stored state was marked paused from outside this run."""
        saved = await self._store.load(self._identity)
        if saved is None or saved.status is not RunStatus.PAUSED:
            return False
        self._log.info("external_pause_detected")
        return True

    async def _pause(self) -> RunState:
        state = self._require_state()
        self._suspend_requested = False
        state.status = RunStatus.PAUSED
        await self._persist()
        self._log.info("workflow_paused", next_step_index=state.next_step_index)
        await self._emit(
            WorkflowPaused(
                workflow_identity=self._identity,
                next_step_index=state.next_step_index,
            )
        )
        return state

    async def _fail(self, error: Exception) -> None:
        state = self._require_state()
        step_index = getattr(error, "step_index", None)
        state.status = RunStatus.ERROR
        state.error = str(error)
        self._log.error(
            "workflow_failed",
            step_index=step_index,
            error_type=type(error).__name__,
            error=str(error),
        )
        try:
            await self._persist()
        except WorkflowExecutionError as persist_error:
            # The original error is the one raised.
            self._log.error("failed_state_not_persisted", error=str(persist_error))
        await self._emit(
            WorkflowFailed(
                workflow_identity=self._identity,
                step_index=step_index,
                error=str(error),
            )
        )

    async def _persist(self) -> None:
        state = self._require_state()
        state.touch()
        try:
            await self._store.save(state)
        except (OSError, TypeError, ValueError) as e:
            raise WorkflowExecutionError(
                f"Failed to persist run state: {e}",
                hint="Run variables must be JSON-serializable and the state "
                "directory writable.",
            ) from e
        await self._emit(
            StatePersisted(
                workflow_identity=self._identity,
                current_step_index=state.current_step_index,
                status=state.status,
            )
        )

    def _build_nested_engine(
        self,
        reference: str,
        kind: ActionKind,
        variables: dict[str, Any],
    ) -> WorkflowEngine:
        identity = self._loader.identity_of(reference)
        chain = (*self._invocation_chain, self._identity)
        if identity in chain:
            raise WorkflowExecutionError(
                f"Recursive invocation of '{reference}'",
                detail=" -> ".join((*chain, identity)),
                hint="Remove the invoke action that re-enters a workflow already running.",
            )
        self._log.debug("nested_engine_created", reference=reference, kind=kind.value)
        return WorkflowEngine(
            reference,
            loader=self._loader,
            store=self._store,
            operator=self._operator,
            filesystem=self._filesystem,
            autonomous_mode=self._autonomous_mode,
            root_context=self._root_context,
            default_variables=self._default_variables,
            event_callback=self._forward_child_event if self._event_callback else None,
            inherited_variables=variables,
            invocation_chain=chain,
        )

    async def _forward_child_event(self, event: ProgressEvent) -> None:
        if not isinstance(event, _CHILD_LIFECYCLE_EVENTS):
            await self._emit(event)

    async def _emit(self, event: ProgressEvent) -> None:
        if self._event_callback is not None:
            await self._event_callback(event)

    def _require_state(self) -> RunState:
        if self._state is None:
            raise WorkflowExecutionError("Workflow has not been started")
        return self._state
