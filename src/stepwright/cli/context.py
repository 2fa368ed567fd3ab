"""CLI context and utilities for stepwright.

This module provides context management, exit codes, and the bridge from
Click's synchronous commands to the async engine.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, TypeVar

import click

from stepwright.config import StepwrightConfig

__all__ = [
    "ExitCode",
    "CLIContext",
    "async_command",
    "get_cli_context",
]


class ExitCode(IntEnum):
    """Exit codes for the stepwright CLI.

    - 0 the run completed
    - 1 the run failed
    - 2 the run paused before finishing
    - 130 keyboard interrupt (128 + SIGINT=2)
    """

    SUCCESS = 0
    FAILURE = 1
    PAUSED = 2
    INTERRUPTED = 130


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global options and configuration shared by all commands.

    Attributes:
        config: Loaded configuration.
        config_path: Path to config file (if specified via --config).
        verbosity: Verbosity level (0=default, 1=INFO, 2+=DEBUG).
        quiet: Suppress non-essential output.
    """

    config: StepwrightConfig
    config_path: Path | None = None
    verbosity: int = 0
    quiet: bool = False


def get_cli_context(ctx: click.Context) -> CLIContext:
    """Return the CLIContext stored by the ``stepwright`` group."""
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    return cli_ctx


F = TypeVar("F", bound=Callable[..., Any])


def async_command(f: F) -> F:
    """Decorator to run async Click commands with asyncio.run().

    Example:
        >>> @cli.command()
        >>> @click.pass_context
        >>> @async_command
        >>> async def run(ctx: click.Context, workflow: str) -> None:
        >>>     await engine.execute()
    """

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(f(*args, **kwargs))

    return wrapper  # type: ignore[return-value]
