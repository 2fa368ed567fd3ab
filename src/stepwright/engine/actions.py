"""Action and check variants declared inside a step.

Actions form a closed union (:data:`Action`). The executor dispatches on it
with an exhaustive ``match``, so adding a variant here without handling it
there is a type error.

Markup to variant mapping:

- ``<action>text</action>``: :class:`PlainAction`
- ``<ask var="name">prompt</ask>``: :class:`Ask`
- ``<elicit-required>prompt</elicit-required>``: :class:`Ask` with ``elicit``
- ``<output>text</output>``: :class:`Output`
- ``<template-output file="f">text</template-output>``: :class:`Output`
  with ``file``
- ``<goto step="N"/>``: :class:`Goto`
- ``<invoke-workflow path="..."/>``: :class:`InvokeWorkflow`
- ``<invoke-task path="..."/>``: :class:`InvokeTask`
- ``<check if="...">actions</check>``: :class:`Check`

Every action tag accepts an optional ``if="..."`` condition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from stepwright.engine.types import ActionKind

__all__ = [
    "PlainAction",
    "Ask",
    "Output",
    "Goto",
    "InvokeWorkflow",
    "InvokeTask",
    "Action",
    "Check",
]


@dataclass(frozen=True, slots=True)
class PlainAction:
    """An instruction recorded as a described effect.

    Attributes:
        content: Instruction text (may contain variable tokens).
        condition: Optional guard for this action.
    """

    kind: ClassVar[ActionKind] = ActionKind.ACTION

    content: str
    condition: str | None = None


@dataclass(frozen=True, slots=True)
class Ask:
    """A question for the operator.

    Attributes:
        content: Prompt text (may contain variable tokens).
        var: Variable that receives the answer, if any.
        elicit: True for ``<elicit-required>``, which demands an answer.
        condition: Optional guard for this action.
    """

    kind: ClassVar[ActionKind] = ActionKind.ASK

    content: str
    var: str | None = None
    elicit: bool = False
    condition: str | None = None


@dataclass(frozen=True, slots=True)
class Output:
    """A generated artifact that needs operator approval.

    Attributes:
        content: Artifact text (may contain variable tokens).
        file: Destination file, relative to the root context, for
            ``<template-output>``; None for plain ``<output>``.
        condition: Optional guard for this action.
    """

    kind: ClassVar[ActionKind] = ActionKind.OUTPUT

    content: str
    file: str | None = None
    condition: str | None = None


@dataclass(frozen=True, slots=True)
class Goto:
    """Jump to another step once the current step finishes."""

    kind: ClassVar[ActionKind] = ActionKind.GOTO

    step: int
    condition: str | None = None

    @property
    def content(self) -> str:
        return f"Jump to step {self.step}"


@dataclass(frozen=True, slots=True)
class InvokeWorkflow:
    """Run a nested workflow to completion.

    Attributes:
        content: Workflow reference (may contain variable tokens).
    """

    kind: ClassVar[ActionKind] = ActionKind.INVOKE_WORKFLOW

    content: str
    condition: str | None = None


@dataclass(frozen=True, slots=True)
class InvokeTask:
    """Run a nested task (a single-file workflow) to completion.

    Attributes:
        content: Task reference (may contain variable tokens).
    """

    kind: ClassVar[ActionKind] = ActionKind.INVOKE_TASK

    content: str
    condition: str | None = None


Action = PlainAction | Ask | Output | Goto | InvokeWorkflow | InvokeTask


@dataclass(frozen=True, slots=True)
class Check:
    """Actions that run only when ``condition`` holds. Checks do not nest."""

    condition: str
    actions: tuple[Action, ...] = ()
