"""Human operator interface.

The engine hands every human-facing action to an :class:`Operator`: ``<ask>``
prompts and approval of ``<output>`` artifacts. The engine awaits the
operator and does not care how it talks to the human (terminal, web UI,
chat). In autonomous mode the operator is never called.
"""

from __future__ import annotations

from typing import Protocol

__all__ = ["Operator"]


class Operator(Protocol):
    """Protocol for the human in the loop."""

    async def ask(self, prompt: str, *, step_index: int) -> str | None:
        """Ask the operator a question.

        Args:
            prompt: Resolved prompt text.
            step_index: Step the question belongs to.

        Returns:
            The answer, or None if the operator gave none.
        """
        ...

    async def approve(
        self,
        content: str,
        *,
        step_index: int,
        file: str | None = None,
    ) -> bool:
        """Ask the operator to approve a generated output.

        Args:
            content: Resolved output text.
            step_index: Step that produced the output.
            file: Destination file for template outputs.

        Returns:
            True to accept the output, False to reject it.
        """
        ...
