from __future__ import annotations

import click

from stepwright.cli.common import build_engine, cli_error_handler, exit_for_state
from stepwright.cli.context import async_command, get_cli_context
from stepwright.logging import bind_context


@click.command()
@click.argument("workflow")
@click.option(
    "--yolo",
    is_flag=True,
    default=False,
    help="Continue in autonomous mode.",
)
@click.pass_context
@async_command
async def resume(ctx: click.Context, workflow: str, yolo: bool) -> None:
    """Continue the saved run of WORKFLOW.

    Steps that already completed are not repeated; the run continues at the
    step after the last one saved. A run that failed restarts the failed
    step.

    Examples:
        stepwright resume workflows/create-prd
    """
    cli_ctx = get_cli_context(ctx)
    bind_context(command="resume")

    with cli_error_handler():
        engine, _ = build_engine(cli_ctx, workflow, yolo=yolo)
        state = await engine.resume()

    exit_for_state(state)
