"""Unit tests for cli_error_handler and the other shared command helpers."""

from __future__ import annotations

import click
import pytest

from stepwright.cli.common import cli_error_handler, exit_for_state, parse_inputs
from stepwright.cli.context import ExitCode
from stepwright.engine import RunState, RunStatus, UndefinedVariableError
from stepwright.exceptions import ConfigError, StepwrightError


def test_cli_error_handler_keyboard_interrupt(capfd):
    """Test cli_error_handler handles KeyboardInterrupt correctly."""
    with pytest.raises(SystemExit) as exc_info, cli_error_handler():
        raise KeyboardInterrupt()

    assert exc_info.value.code == ExitCode.INTERRUPTED
    captured = capfd.readouterr()
    assert "Interrupted by user" in captured.err


def test_cli_error_handler_execution_error(capfd):
    """Test that engine errors print their step and resolution."""
    error = UndefinedVariableError("audience", ["name"], text="Write for {{audience}}")
    error.attach_step(3)

    with pytest.raises(SystemExit) as exc_info, cli_error_handler():
        raise error

    assert exc_info.value.code == ExitCode.FAILURE
    captured = capfd.readouterr()
    assert "Error: Undefined variable: {{audience}}" in captured.err
    assert "Step: 3" in captured.err
    assert "In: Write for {{audience}}" in captured.err
    assert "Suggestion: Declare 'audience'" in captured.err


def test_cli_error_handler_config_error(capfd):
    with pytest.raises(SystemExit) as exc_info, cli_error_handler():
        raise ConfigError("Invalid configuration", field="verbosity", value="loud")

    assert exc_info.value.code == ExitCode.FAILURE
    captured = capfd.readouterr()
    assert "Field: verbosity" in captured.err
    assert "Value: loud" in captured.err


def test_cli_error_handler_stepwright_error(capfd):
    with pytest.raises(SystemExit) as exc_info, cli_error_handler():
        raise StepwrightError("Something went wrong")

    assert exc_info.value.code == ExitCode.FAILURE
    assert "Something went wrong" in capfd.readouterr().err


def test_cli_error_handler_generic_exception(capfd):
    """Test cli_error_handler handles generic exceptions correctly."""
    with pytest.raises(SystemExit) as exc_info, cli_error_handler():
        raise ValueError("Unexpected error")

    assert exc_info.value.code == ExitCode.FAILURE
    assert "Error: Unexpected error" in capfd.readouterr().err


def test_cli_error_handler_passes_through_success():
    with cli_error_handler():
        value = 1 + 1

    assert value == 2


class TestParseInputs:
    """Tests for KEY=VALUE input parsing."""

    def test_values_parsed_as_json_when_possible(self) -> None:
        result = parse_inputs(
            ("name=Atlas", "count=3", "ready=true", 'tags=["a", "b"]', "expr=a=b")
        )

        assert result == {
            "name": "Atlas",
            "count": 3,
            "ready": True,
            "tags": ["a", "b"],
            "expr": "a=b",
        }

    def test_missing_separator(self) -> None:
        with pytest.raises(click.BadParameter, match="KEY=VALUE"):
            parse_inputs(("novalue",))


class TestExitForState:
    """Tests for mapping final run states to exit codes."""

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (RunStatus.COMPLETED, ExitCode.SUCCESS),
            (RunStatus.PAUSED, ExitCode.PAUSED),
        ],
    )
    def test_exit_codes(self, status: RunStatus, code: ExitCode) -> None:
        state = RunState(workflow_identity="mem://x", status=status)

        with pytest.raises(SystemExit) as exc_info:
            exit_for_state(state)

        assert exc_info.value.code == code
