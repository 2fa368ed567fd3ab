from __future__ import annotations

import click

from stepwright.cli.common import (
    build_engine,
    cli_error_handler,
    exit_for_state,
    parse_inputs,
)
from stepwright.cli.context import async_command, get_cli_context
from stepwright.cli.output import err_console, format_warning
from stepwright.engine import StateCorruptionError
from stepwright.logging import bind_context


@click.command()
@click.argument("workflow")
@click.option(
    "-i",
    "--input",
    "inputs",
    multiple=True,
    help="Input variable (KEY=VALUE format). Values are parsed as JSON when possible.",
)
@click.option(
    "--yolo",
    is_flag=True,
    default=False,
    help="Autonomous mode: skip optional steps and questions, auto-approve outputs.",
)
@click.pass_context
@async_command
async def run(
    ctx: click.Context,
    workflow: str,
    inputs: tuple[str, ...],
    yolo: bool,
) -> None:
    """Start a new run of WORKFLOW.

    WORKFLOW is a workflow YAML file, a directory containing workflow.yaml,
    or a markdown task file. Relative paths resolve against the configured
    root context.

    Progress is saved after every step; an interrupted or failed run can be
    continued with 'stepwright resume'.

    Examples:
        stepwright run workflows/create-prd -i project_name=Atlas
        stepwright run tasks/summarize.md --yolo
    """
    cli_ctx = get_cli_context(ctx)
    input_dict = parse_inputs(inputs)
    bind_context(command="run")

    with cli_error_handler():
        engine, store = build_engine(cli_ctx, workflow, yolo=yolo)

        try:
            existing = await store.load(engine.identity)
        except StateCorruptionError:
            err_console.print(format_warning("Saved run state is unreadable; starting over."))
        else:
            if existing is not None and not existing.is_finished:
                err_console.print(
                    format_warning(
                        f"Replacing unfinished run saved at step "
                        f"{existing.current_step_index}. Use 'stepwright resume' "
                        "to continue a run instead."
                    )
                )

        state = await engine.execute(input_dict)

    exit_for_state(state)
