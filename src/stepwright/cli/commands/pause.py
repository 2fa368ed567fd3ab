from __future__ import annotations

import click

from stepwright.cli.common import build_engine, cli_error_handler
from stepwright.cli.context import async_command, get_cli_context
from stepwright.cli.output import console, err_console, format_success, format_warning
from stepwright.engine import RunStatus, StateNotFoundError
from stepwright.logging import bind_context

_NOT_PAUSABLE = {
    RunStatus.PAUSED: "Run is already paused.",
    RunStatus.COMPLETED: "Run is already completed; there is nothing to pause.",
    RunStatus.ERROR: "Run stopped with an error; resume it to retry the failed step.",
}


@click.command()
@click.argument("workflow")
@click.pass_context
@async_command
async def pause(ctx: click.Context, workflow: str) -> None:
    """Pause the running WORKFLOW after its current step.

    The saved run state is marked paused. A run in progress in another
    terminal finishes the step it is on, saves, and exits with code 2.

    Examples:
        stepwright pause workflows/create-prd
    """
    cli_ctx = get_cli_context(ctx)
    bind_context(command="pause")

    with cli_error_handler():
        engine, store = build_engine(cli_ctx, workflow)
        saved = await store.load(engine.identity)
        if saved is None:
            raise StateNotFoundError(engine.identity)
        if saved.status in _NOT_PAUSABLE:
            err_console.print(format_warning(_NOT_PAUSABLE[saved.status]))
            return
        state = await engine.pause_saved()

    console.print(
        format_success(f"Paused at step {state.current_step_index}"),
        markup=False,
    )
    console.print(f"Continue with: stepwright resume {workflow}", markup=False)
