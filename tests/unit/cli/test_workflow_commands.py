"""Unit tests for the run, resume, pause and status commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from stepwright.cli.context import ExitCode
from stepwright.engine import (
    FileDefinitionLoader,
    FileStateStore,
    RunState,
    RunStatus,
    WorkflowEngine,
)
from stepwright.main import cli

TASK = """
<step n="1" goal="Ask"><ask var="name">Your name?</ask></step>
<step n="2" goal="Draft"><template-output file="out/{{name|anon}}.md">Hello {{name|anon}}</template-output></step>
<step n="3" goal="Wrap up" optional="true"><action>Polish the draft</action></step>
"""


@pytest.fixture
def task_file(project_dir: Path) -> Path:
    path = project_dir / "hello.md"
    path.write_text(TASK)
    return path


def status_json(cli_runner: CliRunner, workflow: str) -> dict[str, object]:
    result = cli_runner.invoke(cli, ["status", workflow, "--format", "json"])
    assert result.exit_code == 0, result.output
    data: dict[str, object] = json.loads(result.stdout)
    return data


class TestRunCommand:
    """Tests for ``stepwright run``."""

    def test_yolo_run_completes(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["run", "hello.md", "--yolo", "-i", "name=Ada"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "Step 1: Ask" in result.output
        assert "skipped (optional)" in result.output
        assert "Workflow completed successfully" in result.output
        assert (project_dir / "out" / "Ada.md").read_text() == "Hello Ada"

        state = status_json(cli_runner, "hello.md")
        assert state["status"] == "completed"
        assert state["current_step_index"] == 3

    def test_interactive_run(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["run", "hello.md"], input="Bo\ny\n")

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "Your name?" in result.output
        assert "Polish the draft" in result.output
        assert (project_dir / "out" / "Bo.md").read_text() == "Hello Bo"

    def test_rejected_output_then_resume(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["run", "hello.md"], input="Cy\nn\n")

        assert result.exit_code == ExitCode.FAILURE
        assert "Output was rejected by the operator" in result.output
        assert "Step: 2" in result.output
        state = status_json(cli_runner, "hello.md")
        assert state["status"] == "error"
        assert state["next_step_index"] == 2

        resumed = cli_runner.invoke(cli, ["resume", "hello.md", "--yolo"])

        assert resumed.exit_code == ExitCode.SUCCESS, resumed.output
        assert "Resuming workflow" in resumed.output
        assert "Step 1: Ask" not in resumed.output
        assert (project_dir / "out" / "Cy.md").read_text() == "Hello Cy"

    def test_warns_when_replacing_unfinished_run(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        cli_runner.invoke(cli, ["run", "hello.md"], input="Cy\nn\n")

        result = cli_runner.invoke(cli, ["run", "hello.md", "--yolo"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "Replacing unfinished run" in result.output

    def test_missing_workflow(self, cli_runner: CliRunner, project_dir: Path) -> None:
        result = cli_runner.invoke(cli, ["run", "missing.md"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Workflow definition not found" in result.output

    def test_invalid_input_format(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["run", "hello.md", "-i", "novalue"])

        assert result.exit_code == 2
        assert "Invalid input format" in result.output

    def test_quiet_suppresses_progress(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["-q", "run", "hello.md", "--yolo"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "Step 1" not in result.output
        assert (project_dir / "out" / "anon.md").exists()


class TestResumeCommand:
    """Tests for ``stepwright resume``."""

    def test_resume_without_state(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["resume", "hello.md"])

        assert result.exit_code == ExitCode.FAILURE
        assert "No saved run state for workflow" in result.output


class TestStatusCommand:
    """Tests for ``stepwright status``."""

    def test_status_without_state(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["status", "hello.md"])

        assert result.exit_code == ExitCode.FAILURE
        assert "No saved run state" in result.output
        assert "stepwright run hello.md" in result.output

    def test_status_text(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        cli_runner.invoke(cli, ["run", "hello.md", "--yolo"])

        result = cli_runner.invoke(cli, ["status", "hello.md"])

        assert result.exit_code == 0, result.output
        assert "completed" in result.output
        assert "Current step" in result.output


def saved_run_engine(project_dir: Path) -> WorkflowEngine:
    """Engine over the project's state store, as a second terminal would see it."""
    return WorkflowEngine(
        "hello.md",
        loader=FileDefinitionLoader(project_dir),
        store=FileStateStore(project_dir / ".state"),
        root_context=project_dir,
    )


class TestPauseCommand:
    """Tests for ``stepwright pause``."""

    def test_pause_without_state(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["pause", "hello.md"])

        assert result.exit_code == ExitCode.FAILURE
        assert "No saved run state for workflow" in result.output

    def test_pause_running_run_then_resume(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        engine = saved_run_engine(project_dir)
        running = RunState(
            workflow_identity=engine.identity,
            current_step_index=1,
            next_step_index=2,
            status=RunStatus.RUNNING,
            variables={"name": "Ed"},
        )
        asyncio.run(FileStateStore(project_dir / ".state").save(running))

        result = cli_runner.invoke(cli, ["pause", "hello.md"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "Paused at step 1" in result.output
        assert "stepwright resume hello.md" in result.output
        assert status_json(cli_runner, "hello.md")["status"] == "paused"

        resumed = cli_runner.invoke(cli, ["resume", "hello.md", "--yolo"])

        assert resumed.exit_code == ExitCode.SUCCESS, resumed.output
        assert (project_dir / "out" / "Ed.md").read_text() == "Hello Ed"

    def test_pause_completed_run_warns(
        self, cli_runner: CliRunner, project_dir: Path, task_file: Path
    ) -> None:
        cli_runner.invoke(cli, ["run", "hello.md", "--yolo"])

        result = cli_runner.invoke(cli, ["pause", "hello.md"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "already completed" in result.output
        assert status_json(cli_runner, "hello.md")["status"] == "completed"

    def test_run_paused_from_elsewhere_exits_paused(
        self,
        cli_runner: CliRunner,
        project_dir: Path,
        task_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def answer_while_paused_elsewhere(*args: object, **kwargs: object) -> str:
            asyncio.run(saved_run_engine(project_dir).pause_saved())
            return "Di"

        monkeypatch.setattr(click, "prompt", answer_while_paused_elsewhere)

        result = cli_runner.invoke(cli, ["run", "hello.md"])

        assert result.exit_code == ExitCode.PAUSED, result.output
        assert "Paused before step 2" in result.output
        state = status_json(cli_runner, "hello.md")
        assert state["status"] == "paused"
        assert state["next_step_index"] == 2
        assert not (project_dir / "out").exists()

        resumed = cli_runner.invoke(cli, ["resume", "hello.md"], input="y\n")

        assert resumed.exit_code == ExitCode.SUCCESS, resumed.output
        assert (project_dir / "out" / "Di.md").read_text() == "Hello Di"
