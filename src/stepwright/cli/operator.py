"""Terminal operator for interactive runs."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from stepwright.cli.output import console as default_console

__all__ = ["ConsoleOperator"]


class ConsoleOperator:
    """Answers ``<ask>`` prompts and approves ``<output>`` artifacts on a terminal.

    Prompts are read with :func:`click.prompt` and :func:`click.confirm` in a
    worker thread so the event loop is not blocked while waiting on the
    human.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console if console is not None else default_console

    async def ask(self, prompt: str, *, step_index: int) -> str | None:
        self._console.print(f"[bold cyan]Step {step_index}[/] asks:")
        self._console.print(prompt, markup=False, highlight=False)
        answer: str = await asyncio.to_thread(
            click.prompt, ">", default="", show_default=False
        )
        answer = answer.strip()
        return answer or None

    async def approve(
        self,
        content: str,
        *,
        step_index: int,
        file: str | None = None,
    ) -> bool:
        title = f"Step {step_index} output"
        if file:
            title = f"{title} -> {file}"
        self._console.print(Panel(Markdown(content), title=title, expand=False))
        approved: bool = await asyncio.to_thread(
            click.confirm, "Approve this output?", default=True
        )
        return approved
