from __future__ import annotations

import click

from stepwright.cli.common import cli_error_handler
from stepwright.cli.context import ExitCode, async_command, get_cli_context
from stepwright.cli.output import (
    console,
    err_console,
    format_error,
    format_json,
    state_table,
)
from stepwright.engine import FileDefinitionLoader, FileStateStore


@click.command()
@click.argument("workflow")
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format.",
)
@click.pass_context
@async_command
async def status(ctx: click.Context, workflow: str, fmt: str) -> None:
    """Show the saved run state of WORKFLOW.

    Examples:
        stepwright status workflows/create-prd
        stepwright status workflows/create-prd --format json
    """
    config = get_cli_context(ctx).config

    with cli_error_handler():
        identity = FileDefinitionLoader(config.root_context).identity_of(workflow)
        state = await FileStateStore(config.resolved_state_dir).load(identity)

    if state is None:
        err_console.print(
            format_error(
                f"No saved run state for {identity}",
                suggestion=f"Start one with 'stepwright run {workflow}'",
            ),
            markup=False,
            highlight=False,
        )
        raise SystemExit(ExitCode.FAILURE)

    if fmt == "json":
        click.echo(format_json(state.to_dict()))
    else:
        console.print(state_table(state))
