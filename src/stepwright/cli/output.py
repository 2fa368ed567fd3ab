"""Output helpers for the stepwright CLI.

Holds the shared Rich consoles (styled in a terminal, plain text when piped)
and the formatters used for errors, warnings and run state summaries.
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from stepwright.engine.state import RunState
from stepwright.exceptions import ConfigError, StepwrightError

__all__ = [
    "console",
    "err_console",
    "format_error",
    "format_exception",
    "format_success",
    "format_warning",
    "format_json",
    "state_table",
]

console = Console()
err_console = Console(stderr=True)


def format_error(
    message: str, details: list[str] | None = None, suggestion: str | None = None
) -> str:
    """Format an error message with optional details and suggestion.

    Args:
        message: Primary error message.
        details: Optional list of detail lines to include.
        suggestion: Optional suggestion for resolving the error.

    Returns:
        Formatted error string.

    Example:
        >>> print(format_error(
        ...     "No saved run state",
        ...     details=["Workflow: create-prd"],
        ...     suggestion="Run 'stepwright run create-prd'",
        ... ))
        Error: No saved run state
          Workflow: create-prd
        Suggestion: Run 'stepwright run create-prd'
    """
    lines = [f"Error: {message}"]

    if details:
        for detail in details:
            lines.append(f"  {detail}")

    if suggestion:
        lines.append(f"Suggestion: {suggestion}")

    return "\n".join(lines)


def format_exception(error: StepwrightError) -> str:
    """Format a stepwright error using the details it carries.

    Engine execution errors contribute their step, offending content and
    resolution hint; configuration errors their field and value.
    """
    details: list[str] = []
    suggestion: str | None = None

    step_index = getattr(error, "step_index", None)
    if step_index is not None:
        details.append(f"Step: {step_index}")
    detail = getattr(error, "detail", None)
    if detail:
        details.append(f"In: {detail}")
    hint = getattr(error, "hint", None)
    if hint:
        suggestion = hint

    if isinstance(error, ConfigError):
        if error.field:
            details.append(f"Field: {error.field}")
        if error.value is not None:
            details.append(f"Value: {error.value}")

    return format_error(error.message, details=details or None, suggestion=suggestion)


def format_success(message: str) -> str:
    """Format a success message.

    Example:
        >>> format_success("Workflow completed")
        'Success: Workflow completed'
    """
    return f"Success: {message}"


def format_warning(message: str) -> str:
    return f"Warning: {message}"


def format_json(data: Any) -> str:
    """Format data as indented JSON (2 spaces)."""
    return json.dumps(data, indent=2, default=str)


def state_table(state: RunState) -> Table:
    """Render a run state as a two-column Rich table."""
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Workflow", state.workflow_identity)
    table.add_row("Status", state.status.value)
    table.add_row("Current step", str(state.current_step_index))
    table.add_row(
        "Next step",
        str(state.next_step_index) if state.next_step_index is not None else "-",
    )
    table.add_row("Started", state.started_at.isoformat(timespec="seconds"))
    table.add_row("Updated", state.last_updated_at.isoformat(timespec="seconds"))
    if state.error:
        table.add_row("Error", state.error)
    if state.variables:
        table.add_row("Variables", ", ".join(sorted(state.variables)))
    return table
