"""CLI utilities for stepwright.

This module provides the CLI context, error handling, output formatting and
the terminal operator used by the ``stepwright`` commands.
"""

from __future__ import annotations

from stepwright.cli.context import CLIContext, ExitCode, async_command
from stepwright.cli.operator import ConsoleOperator
from stepwright.cli.progress import ProgressPrinter

__all__ = [
    "CLIContext",
    "ConsoleOperator",
    "ExitCode",
    "ProgressPrinter",
    "async_command",
]
