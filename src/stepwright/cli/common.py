from __future__ import annotations

import contextlib
import json
from collections.abc import Generator
from typing import Any, NoReturn

import click

from stepwright.cli.context import CLIContext, ExitCode
from stepwright.cli.operator import ConsoleOperator
from stepwright.cli.output import err_console, format_exception
from stepwright.cli.progress import ProgressPrinter
from stepwright.engine import (
    FileStateStore,
    RunState,
    RunStatus,
    StateStore,
    WorkflowEngine,
)
from stepwright.exceptions import StepwrightError
from stepwright.logging import get_logger

__all__ = [
    "build_engine",
    "cli_error_handler",
    "exit_for_state",
    "parse_inputs",
]


@contextlib.contextmanager
def cli_error_handler() -> Generator[None, None, None]:
    """Context manager for common CLI error handling.

    - KeyboardInterrupt: exit with code 130
    - StepwrightError: print message, step and resolution, exit with code 1
    - Other exceptions: log with traceback, print message, exit with code 1

    Example:
        >>> with cli_error_handler():
        >>>     await engine.execute(inputs)
    """
    logger = get_logger(__name__)

    try:
        yield
    except KeyboardInterrupt:
        err_console.print("\n\nInterrupted by user.")
        raise SystemExit(ExitCode.INTERRUPTED) from None
    except StepwrightError as e:
        err_console.print(format_exception(e), markup=False, highlight=False)
        raise SystemExit(ExitCode.FAILURE) from e
    except Exception as e:
        logger.exception("Unexpected error in command")
        err_console.print(f"Error: {e!s}", markup=False, highlight=False)
        raise SystemExit(ExitCode.FAILURE) from e


def parse_inputs(inputs: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` options into a dict.

    Values are read as JSON when possible (``count=3``, ``flag=true``) and
    kept as strings otherwise.

    Raises:
        click.BadParameter: If an entry has no ``=``.
    """
    result: dict[str, Any] = {}
    for input_str in inputs:
        if "=" not in input_str:
            raise click.BadParameter(
                f"Invalid input format: {input_str} (use KEY=VALUE, e.g. -i name=atlas)",
                param_hint="'-i' / '--input'",
            )
        key, value = input_str.split("=", 1)
        try:
            result[key] = json.loads(value)
        except json.JSONDecodeError:
            result[key] = value
    return result


def exit_for_state(state: RunState) -> NoReturn:
    """Exit with the code matching how the run ended."""
    if state.status is RunStatus.PAUSED:
        raise SystemExit(ExitCode.PAUSED)
    raise SystemExit(ExitCode.SUCCESS)


def build_engine(
    cli_ctx: CLIContext,
    workflow: str,
    *,
    yolo: bool = False,
) -> tuple[WorkflowEngine, StateStore]:
    """Create an engine for ``workflow`` wired for terminal use.

    ``--yolo`` forces autonomous mode; without it the configured value
    applies.
    """
    config = cli_ctx.config
    store = FileStateStore(config.resolved_state_dir)
    engine = WorkflowEngine.from_config(
        workflow,
        config,
        operator=ConsoleOperator(),
        autonomous_mode=True if yolo else None,
        event_callback=ProgressPrinter(quiet=cli_ctx.quiet),
        store=store,
    )
    return engine, store
