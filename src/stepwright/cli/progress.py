"""Progress display for workflow runs.

:class:`ProgressPrinter` is passed to the engine as its ``event_callback``
and prints step lifecycle events to the console.
"""

from __future__ import annotations

from rich.console import Console

from stepwright.cli.output import console as default_console
from stepwright.engine.events import (
    ActionPerformed,
    ProgressEvent,
    StepCompleted,
    StepSkipped,
    StepStarted,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowPaused,
    WorkflowStarted,
)
from stepwright.engine.types import ActionKind

__all__ = ["ProgressPrinter"]

_ACTION_ICONS = {
    ActionKind.ACTION: "●",
    ActionKind.ASK: "?",
    ActionKind.OUTPUT: "✍",
    ActionKind.GOTO: "↪",
    ActionKind.INVOKE_WORKFLOW: "⚙",
    ActionKind.INVOKE_TASK: "⚙",
}


class ProgressPrinter:
    """Prints progress events to a Rich console."""

    def __init__(self, console: Console | None = None, *, quiet: bool = False) -> None:
        self._console = console if console is not None else default_console
        self._quiet = quiet

    async def __call__(self, event: ProgressEvent) -> None:
        if self._quiet:
            return

        if isinstance(event, WorkflowStarted):
            verb = "Resuming" if event.resumed else "Running"
            self._console.print(
                f"[bold cyan]{verb} workflow:[/] {event.workflow_identity}",
                highlight=False,
            )
            if event.inputs:
                summary = ", ".join(f"{k}=[yellow]{v}[/]" for k, v in event.inputs.items())
                self._console.print(f"Inputs: {summary}")
            self._console.print()

        elif isinstance(event, StepStarted):
            self._console.print(f"[blue]Step {event.step_index}:[/] {event.goal}")

        elif isinstance(event, StepSkipped):
            self._console.print(f"  [dim]skipped ({event.reason.value})[/]")

        elif isinstance(event, ActionPerformed):
            icon = _ACTION_ICONS.get(event.kind, "●")
            line = f"  {icon} {event.content}"
            if event.detail:
                line = f"{line} ({event.detail})"
            self._console.print(line, markup=False, highlight=False)

        elif isinstance(event, StepCompleted):
            duration_sec = event.duration_ms / 1000
            self._console.print(f"  [bold green]✓[/] [dim]({duration_sec:.2f}s)[/]")

        elif isinstance(event, WorkflowPaused):
            self._console.print()
            self._console.print(
                f"[yellow]Paused before step {event.next_step_index}[/]"
            )

        elif isinstance(event, WorkflowCompleted):
            total_sec = event.total_duration_ms / 1000
            self._console.print()
            self._console.print(
                f"[bold green]Workflow completed successfully[/] in {total_sec:.2f}s"
            )

        elif isinstance(event, WorkflowFailed):
            self._console.print()
            where = f" at step {event.step_index}" if event.step_index is not None else ""
            self._console.print(f"[bold red]Workflow failed{where}[/]")
