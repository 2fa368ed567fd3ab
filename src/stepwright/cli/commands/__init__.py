"""stepwright CLI commands."""

from __future__ import annotations

from stepwright.cli.commands.pause import pause
from stepwright.cli.commands.resume import resume
from stepwright.cli.commands.run import run
from stepwright.cli.commands.status import status

__all__ = ["pause", "resume", "run", "status"]
