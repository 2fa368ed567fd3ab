"""Tests for WorkflowEngine."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from pathlib import Path

import pytest

from stepwright.config import StepwrightConfig
from stepwright.engine import (
    DefinitionParseError,
    FileDefinitionLoader,
    FileStateStore,
    MemoryStateStore,
    NestedInvocationError,
    RunState,
    RunStatus,
    StateNotFoundError,
    UndefinedVariableError,
    WorkflowEngine,
    WorkflowExecutionError,
    WorkflowMismatchError,
)
from stepwright.engine.events import (
    ActionPerformed,
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
from stepwright.engine.types import SkipReason
from tests.fixtures.engine import (
    DictDefinitionLoader,
    EventRecorder,
    ScriptedOperator,
)

EngineFactory = Callable[..., WorkflowEngine]

THREE_STEPS = """
<step n="1" goal="First"><action>Do one</action></step>
<step n="2" goal="Second" optional="true"><action>Do two</action></step>
<step n="3" goal="Third"><action>Do three</action></step>
"""


def started_steps(events: EventRecorder) -> list[int]:
    return [event.step_index for event in events.of_type(StepStarted)]


class TestExecute:
    """Tests for starting a run."""

    async def test_autonomous_run_skips_optional_step(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        engine = make_engine("demo", autonomous_mode=True)

        state = await engine.execute()

        assert state.status is RunStatus.COMPLETED
        assert state.current_step_index == 3
        assert state.next_step_index is None
        assert started_steps(events) == [1, 2, 3]
        skipped = events.of_type(StepSkipped)
        assert [(e.step_index, e.reason) for e in skipped] == [
            (2, SkipReason.OPTIONAL)
        ]
        assert [e.content for e in events.of_type(ActionPerformed)] == [
            "Do one",
            "Do three",
        ]

        saved = await store.load(identity)
        assert saved is not None
        assert saved.status is RunStatus.COMPLETED
        assert saved.current_step_index == 3

    async def test_state_is_saved_after_every_step(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        loader.add("demo", THREE_STEPS)

        await make_engine("demo", autonomous_mode=True).execute()

        # initial snapshot, one per step, final completion
        assert store.save_count == 5
        persisted = events.of_type(StatePersisted)
        assert [e.current_step_index for e in persisted] == [0, 1, 2, 3, 3]
        assert persisted[-1].status is RunStatus.COMPLETED

    async def test_event_sequence(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        loader.add("single", '<step n="1" goal="Only"><action>Go</action></step>')

        await make_engine("single").execute({"x": 1})

        assert [type(e) for e in events.events] == [
            WorkflowStarted,
            StatePersisted,
            StepStarted,
            ActionPerformed,
            StepCompleted,
            StatePersisted,
            StatePersisted,
            WorkflowCompleted,
        ]
        started = events.events[0]
        assert isinstance(started, WorkflowStarted)
        assert started.inputs == {"x": 1}
        assert started.resumed is False

    async def test_variable_seeding_order(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
    ) -> None:
        loader.add(
            "vars",
            '<step n="1" goal="g"><action>x</action></step>',
            variables={"b": "definition", "c": "definition", "date": "definition"},
        )
        engine = make_engine(
            "vars",
            default_variables={"a": "config", "b": "config", "c": "config", "d": "config"},
            inherited_variables={"c": "inherited"},
        )

        state = await engine.execute({"d": "input", "workflow": "custom"})

        assert state.variables["a"] == "config"
        assert state.variables["b"] == "definition"
        assert state.variables["c"] == "inherited"
        assert state.variables["d"] == "input"
        assert state.variables["date"] == date.today().isoformat()
        assert state.variables["workflow"] == "custom"
        assert state.variables["project-root"] == str(Path("/project"))

    async def test_answers_are_kept_in_state(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        operator: ScriptedOperator,
    ) -> None:
        operator.answers = ["Ada"]
        loader.add(
            "ask",
            '<step n="1" goal="Ask"><ask var="name">Name?</ask></step>'
            '<step n="2" goal="Greet"><action>Hello {{name}}</action></step>',
        )

        state = await make_engine("ask").execute()

        assert state.variables["name"] == "Ada"

    async def test_inputs_are_not_mutated(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        operator: ScriptedOperator,
    ) -> None:
        operator.answers = ["changed"]
        loader.add("ask", '<step n="1" goal="Ask"><ask var="name">Name?</ask></step>')
        inputs = {"name": "original", "nested": {"k": 1}}

        await make_engine("ask").execute(inputs)

        assert inputs == {"name": "original", "nested": {"k": 1}}

    async def test_goto_jumps_forward(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        loader.add(
            "jump",
            '<step n="1" goal="a"><goto step="3"/></step>'
            '<step n="2" goal="b"><action>never</action></step>'
            '<step n="3" goal="c"><action>end</action></step>',
        )

        state = await make_engine("jump").execute()

        assert started_steps(events) == [1, 3]
        assert events.of_type(StepCompleted)[0].goto_target == 3
        assert state.current_step_index == 3

    async def test_goto_loop_until_condition(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        operator: ScriptedOperator,
        events: EventRecorder,
    ) -> None:
        operator.answers = ["no", "yes"]
        loader.add(
            "loop",
            '<step n="1" goal="Ask"><ask var="done">Done?</ask>'
            '<check if="done == no"><goto step="1"/></check></step>'
            '<step n="2" goal="Finish"><action>finished</action></step>',
        )

        state = await make_engine("loop").execute()

        assert started_steps(events) == [1, 1, 2]
        assert state.variables["done"] == "yes"
        assert state.status is RunStatus.COMPLETED

    async def test_guarded_step_skipped(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        loader.add(
            "guard",
            '<step n="1" goal="a" if="mode == full"><action>full</action></step>'
            '<step n="2" goal="b"><action>always</action></step>',
        )

        await make_engine("guard").execute({"mode": "quick"})

        assert [e.reason for e in events.of_type(StepSkipped)] == [SkipReason.GUARD]
        assert [e.content for e in events.of_type(ActionPerformed)] == ["always"]

    async def test_empty_definition_completes(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
    ) -> None:
        loader.add("empty", "No steps here.")

        state = await make_engine("empty").execute()

        assert state.status is RunStatus.COMPLETED
        assert state.current_step_index == 0

    async def test_parse_error_before_any_state(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        loader.add(
            "broken",
            '<step n="1" goal="ok"><action>x</action></step>'
            '<step n="2" goal="bad"><goto step="two"/></step>',
        )

        with pytest.raises(DefinitionParseError):
            await make_engine("broken").execute()

        assert store.save_count == 0
        assert events.events == []


class TestFailures:
    """Tests for fatal errors during a run."""

    async def test_error_is_persisted_before_raising(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        identity = loader.add(
            "fails",
            '<step n="1" goal="a"><action>ok</action></step>'
            '<step n="2" goal="b"><action>{{missing}}</action></step>'
            '<step n="3" goal="c"><action>never</action></step>',
        )
        engine = make_engine("fails")

        with pytest.raises(UndefinedVariableError) as exc_info:
            await engine.execute()

        assert exc_info.value.step_index == 2
        saved = await store.load(identity)
        assert saved is not None
        assert saved.status is RunStatus.ERROR
        assert saved.current_step_index == 1
        assert saved.next_step_index == 2
        assert saved.error is not None
        assert "Undefined variable" in saved.error
        failed = events.of_type(WorkflowFailed)
        assert len(failed) == 1
        assert failed[0].step_index == 2

    async def test_unserializable_state_fails_with_execution_error(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
        tmp_path: Path,
    ) -> None:
        loader.add("dated", '<step n="1" goal="a"><action>ok</action></step>')
        store = FileStateStore(tmp_path / "state")
        engine = make_engine("dated", store=store)

        with pytest.raises(WorkflowExecutionError, match="Failed to persist run state"):
            await engine.execute({"deadline": date(2024, 5, 1)})

        assert engine.state is not None
        assert engine.state.status is RunStatus.ERROR
        assert len(events.of_type(WorkflowFailed)) == 1
        assert events.of_type(StepStarted) == []

    async def test_yaml_dates_in_workflow_file_are_saved(self, tmp_path: Path) -> None:
        workflow_dir = tmp_path / "wf"
        workflow_dir.mkdir()
        (workflow_dir / "workflow.yaml").write_text(
            "name: dated\nvariables:\n  deadline: 2024-05-01\n"
        )
        (workflow_dir / "instructions.md").write_text(
            '<step n="1" goal="Plan"><action>Due {{deadline}}</action></step>'
        )
        store = FileStateStore(tmp_path / "state")
        engine = WorkflowEngine(
            "wf",
            loader=FileDefinitionLoader(tmp_path),
            store=store,
            autonomous_mode=True,
            root_context=tmp_path,
        )

        state = await engine.execute()

        assert state.status is RunStatus.COMPLETED
        saved = await store.load(engine.identity)
        assert saved is not None
        assert saved.variables["deadline"] == "2024-05-01"

    async def test_resume_retries_failed_step(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        loader.add(
            "retry",
            '<step n="1" goal="a"><action>ok</action></step>'
            '<step n="2" goal="b"><action>{{missing}}</action></step>',
        )
        with pytest.raises(UndefinedVariableError):
            await make_engine("retry").execute()

        loader.add(
            "retry",
            '<step n="1" goal="a"><action>ok</action></step>'
            '<step n="2" goal="b"><action>{{missing|fixed}}</action></step>',
        )
        events.events.clear()
        state = await make_engine("retry").resume()

        assert started_steps(events) == [2]
        assert state.status is RunStatus.COMPLETED
        assert state.error is None

    async def test_invalid_goto_target(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        operator: ScriptedOperator,
    ) -> None:
        operator.answers = ["value"]
        identity = loader.add(
            "badgoto",
            '<step n="1" goal="a"><ask var="answer">Q?</ask><goto step="9"/></step>'
            '<step n="2" goal="b"><action>x</action></step>',
        )

        with pytest.raises(WorkflowExecutionError, match="Invalid goto target") as exc_info:
            await make_engine("badgoto").execute()

        assert exc_info.value.step_index == 1
        assert "[1, 2]" in (exc_info.value.hint or "")
        saved = await store.load(identity)
        assert saved is not None
        assert saved.status is RunStatus.ERROR
        assert "answer" not in saved.variables
        assert saved.next_step_index == 1

    async def test_rejected_output_stops_run(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        operator: ScriptedOperator,
    ) -> None:
        operator.approve_outputs = False
        identity = loader.add(
            "reject", '<step n="1" goal="a"><output>Draft</output></step>'
        )

        with pytest.raises(WorkflowExecutionError):
            await make_engine("reject").execute()

        saved = await store.load(identity)
        assert saved is not None
        assert saved.status is RunStatus.ERROR


class TestResume:
    """Tests for resuming from saved state."""

    async def test_resume_continues_at_next_step(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        saved = RunState(
            workflow_identity=identity,
            current_step_index=2,
            next_step_index=3,
            status=RunStatus.RUNNING,
            variables={"kept": True},
        )

        state = await make_engine("demo").resume_from_state(saved)

        assert started_steps(events) == [3]
        assert state.status is RunStatus.COMPLETED
        assert state.variables == {"kept": True}
        assert events.of_type(WorkflowStarted)[0].resumed is True

    async def test_resume_is_repeatable(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        saved = RunState(
            workflow_identity=identity, current_step_index=2, next_step_index=3
        )

        first = await make_engine("demo").resume_from_state(saved)
        first_steps = started_steps(events)
        events.events.clear()
        second = await make_engine("demo").resume_from_state(saved)

        assert started_steps(events) == first_steps == [3]
        assert first.current_step_index == second.current_step_index == 3
        assert saved.status is RunStatus.RUNNING
        assert saved.current_step_index == 2

    async def test_resume_without_next_index_uses_following_step(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        saved = RunState(
            workflow_identity=identity,
            current_step_index=1,
            next_step_index=None,
            status=RunStatus.PAUSED,
        )

        await make_engine("demo").resume_from_state(saved)

        assert started_steps(events) == [2, 3]

    async def test_resume_completed_run_runs_nothing(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        events: EventRecorder,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        saved = RunState(
            workflow_identity=identity,
            current_step_index=3,
            next_step_index=None,
            status=RunStatus.COMPLETED,
        )

        state = await make_engine("demo").resume_from_state(saved)

        assert started_steps(events) == []
        assert state.status is RunStatus.COMPLETED

    async def test_mismatched_state_is_rejected(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        loader.add("demo", THREE_STEPS)
        other = RunState(workflow_identity="mem://other", current_step_index=1)
        await store.save(other)
        engine = make_engine("demo")

        with pytest.raises(WorkflowMismatchError) as exc_info:
            await engine.resume_from_state(other)

        assert exc_info.value.expected_identity == "mem://demo"
        assert exc_info.value.actual_identity == "mem://other"
        assert store.save_count == 1
        assert engine.state is None
        assert loader.load_count == 0
        assert events.events == []

    async def test_missing_step_in_saved_state(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        saved = RunState(workflow_identity=identity, next_step_index=7)

        with pytest.raises(WorkflowExecutionError, match="Step 7 does not exist"):
            await make_engine("demo").resume_from_state(saved)

    async def test_resume_without_saved_state(
        self, make_engine: EngineFactory, loader: DictDefinitionLoader
    ) -> None:
        loader.add("demo", THREE_STEPS)

        with pytest.raises(StateNotFoundError) as exc_info:
            await make_engine("demo").resume()

        assert exc_info.value.identity == "mem://demo"


class TestSuspend:
    """Tests for pausing a run."""

    async def test_suspend_pauses_before_next_step(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        engine: WorkflowEngine

        async def suspend_after_first(event: ProgressEvent) -> None:
            await events(event)
            if isinstance(event, StepCompleted) and event.step_index == 1:
                engine.request_suspend()

        engine = make_engine("demo", event_callback=suspend_after_first)
        state = await engine.execute()

        assert state.status is RunStatus.PAUSED
        assert state.current_step_index == 1
        assert state.next_step_index == 2
        paused = events.of_type(WorkflowPaused)
        assert [e.next_step_index for e in paused] == [2]
        assert events.of_type(WorkflowCompleted) == []

        saved = await store.load(identity)
        assert saved is not None
        assert saved.status is RunStatus.PAUSED

        events.events.clear()
        resumed = await make_engine("demo").resume()
        assert started_steps(events) == [2, 3]
        assert resumed.status is RunStatus.COMPLETED

    async def test_pause_saved_by_another_engine_stops_run(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        loader.add(
            "asks",
            '<step n="1" goal="Ask"><ask var="name">Name?</ask></step>'
            '<step n="2" goal="Use"><action>Hi {{name}}</action></step>',
        )

        class PausingOperator(ScriptedOperator):
            async def ask(self, prompt: str, *, step_index: int) -> str | None:
                await make_engine("asks").pause_saved()
                return "Ada"

        state = await make_engine("asks", operator=PausingOperator()).execute()

        assert state.status is RunStatus.PAUSED
        assert state.next_step_index == 2
        assert state.variables["name"] == "Ada"
        assert started_steps(events) == [1]
        assert len(events.of_type(WorkflowPaused)) == 1

        resumed = await make_engine("asks").resume()
        assert resumed.status is RunStatus.COMPLETED
        assert started_steps(events) == [1, 2]

    async def test_pause_saved_leaves_finished_runs_alone(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
    ) -> None:
        identity = loader.add("demo", THREE_STEPS)
        await make_engine("demo", autonomous_mode=True).execute()
        saves = store.save_count

        state = await make_engine("demo").pause_saved()

        assert state.status is RunStatus.COMPLETED
        assert store.save_count == saves
        saved = await store.load(identity)
        assert saved is not None
        assert saved.status is RunStatus.COMPLETED

    async def test_pause_saved_without_state(
        self, make_engine: EngineFactory, loader: DictDefinitionLoader
    ) -> None:
        loader.add("demo", THREE_STEPS)

        with pytest.raises(StateNotFoundError):
            await make_engine("demo").pause_saved()


class TestNestedInvocation:
    """Tests for invoking child workflows and tasks."""

    async def test_child_runs_with_parent_variables(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
        events: EventRecorder,
    ) -> None:
        child_identity = loader.add(
            "child",
            '<step n="1" goal="child"><ask var="child_only">Q?</ask>'
            "<action>Review {{topic}}</action></step>",
        )
        loader.add(
            "parent",
            '<step n="1" goal="call"><invoke-workflow path="{{child}}"/></step>'
            '<step n="2" goal="after"><action>after</action></step>',
        )

        state = await make_engine("parent", autonomous_mode=True).execute(
            {"topic": "auth", "child": "child"}
        )

        assert state.status is RunStatus.COMPLETED
        assert "child_only" not in state.variables
        contents = [e.content for e in events.of_type(ActionPerformed)]
        assert contents == ["Q?", "Review auth", "child", "after"]
        assert len(events.of_type(WorkflowStarted)) == 1
        assert len(events.of_type(WorkflowCompleted)) == 1

        child_state = await store.load(child_identity)
        assert child_state is not None
        assert child_state.status is RunStatus.COMPLETED

    async def test_child_failure_fails_parent(
        self,
        make_engine: EngineFactory,
        loader: DictDefinitionLoader,
        store: MemoryStateStore,
    ) -> None:
        child_identity = loader.add(
            "task", '<step n="1" goal="t"><action>{{nope}}</action></step>'
        )
        parent_identity = loader.add(
            "parent",
            '<step n="1" goal="a"><action>ok</action></step>'
            '<step n="2" goal="b"><invoke-task path="task"/></step>',
        )

        with pytest.raises(NestedInvocationError) as exc_info:
            await make_engine("parent").execute()

        error = exc_info.value
        assert error.step_index == 2
        assert isinstance(error.child_error, UndefinedVariableError)
        assert error.child_error.step_index == 1

        parent_state = await store.load(parent_identity)
        child_state = await store.load(child_identity)
        assert parent_state is not None and child_state is not None
        assert parent_state.status is RunStatus.ERROR
        assert parent_state.next_step_index == 2
        assert child_state.status is RunStatus.ERROR

    async def test_direct_recursion_is_rejected(
        self, make_engine: EngineFactory, loader: DictDefinitionLoader
    ) -> None:
        loader.add("self", '<step n="1" goal="a"><invoke-workflow path="self"/></step>')

        with pytest.raises(WorkflowExecutionError, match="Recursive invocation"):
            await make_engine("self").execute()

    async def test_indirect_recursion_is_rejected(
        self, make_engine: EngineFactory, loader: DictDefinitionLoader
    ) -> None:
        loader.add("a", '<step n="1" goal="a"><invoke-workflow path="b"/></step>')
        loader.add("b", '<step n="1" goal="b"><invoke-workflow path="a"/></step>')

        with pytest.raises(NestedInvocationError) as exc_info:
            await make_engine("a").execute()

        child_error = exc_info.value.child_error
        assert isinstance(child_error, WorkflowExecutionError)
        assert "Recursive invocation" in child_error.message
        assert child_error.detail == "mem://a -> mem://b -> mem://a"


class TestFromConfig:
    """Tests for building an engine from configuration."""

    async def test_from_config_wires_file_collaborators(
        self, project_dir: Path
    ) -> None:
        (project_dir / "task.md").write_text("Summarize {{topic}}")
        config = StepwrightConfig(
            root_context=project_dir,
            state_dir=Path("state"),
            autonomous_mode=True,
            variables={"topic": "configured"},
        )
        recorder = EventRecorder()

        engine = WorkflowEngine.from_config("task.md", config, event_callback=recorder)
        state = await engine.execute()

        assert engine.autonomous_mode is True
        assert engine.identity == str((project_dir / "task.md").resolve())
        assert [e.content for e in recorder.of_type(ActionPerformed)] == [
            "Summarize configured"
        ]
        saved = await FileStateStore(project_dir / "state").load(engine.identity)
        assert saved is not None
        assert saved.status is state.status is RunStatus.COMPLETED

    def test_autonomous_mode_override(self, project_dir: Path) -> None:
        config = StepwrightConfig(root_context=project_dir, autonomous_mode=True)

        engine = WorkflowEngine.from_config("x.md", config, autonomous_mode=False)

        assert engine.autonomous_mode is False
        assert engine.identity == str(
            FileDefinitionLoader(project_dir).identity_of("x.md")
        )
