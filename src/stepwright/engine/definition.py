"""Workflow definition model.

A :class:`WorkflowDefinition` is an ordered tuple of :class:`Step` objects
plus the variables it declares. Steps keep their raw markup and parse it into
actions and checks on first use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from stepwright.engine.actions import Action, Check
from stepwright.engine.content import ContentParser, StepContent, StepMarkup
from stepwright.engine.errors import DefinitionParseError

__all__ = [
    "Step",
    "WorkflowDefinition",
]


@dataclass(slots=True)
class Step:
    """One indexed, optionally guarded unit of a workflow.

    Attributes:
        index: Step number, unique within the definition.
        goal: Human description of the step (not interpreted).
        content: Raw markup holding the step's actions and checks.
        optional: Skipped in autonomous mode when True.
        guard: Condition that must hold for the step to run; None means
            always run.
        source: Identity of the owning definition, used in parse errors.
    """

    index: int
    goal: str
    content: str = ""
    optional: bool = False
    guard: str | None = None
    source: str | None = field(default=None, compare=False)
    _parsed: StepContent | None = field(
        default=None, init=False, repr=False, compare=False
    )

    @classmethod
    def from_markup(cls, markup: StepMarkup, source: str | None = None) -> Step:
        return cls(
            index=markup.index,
            goal=markup.goal,
            content=markup.content,
            optional=markup.optional,
            guard=markup.guard,
            source=source,
        )

    def parse(self, parser: ContentParser | None = None) -> StepContent:
        """Parse actions and checks from ``content``, once.

        Raises:
            DefinitionParseError: If the markup is malformed.
        """
        if self._parsed is None:
            parser = parser if parser is not None else ContentParser()
            self._parsed = parser.parse_content(
                self.content, step_index=self.index, source=self.source
            )
        return self._parsed

    @property
    def is_parsed(self) -> bool:
        return self._parsed is not None

    @property
    def actions(self) -> tuple[Action, ...]:
        return self.parse().actions

    @property
    def checks(self) -> tuple[Check, ...]:
        return self.parse().checks


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    """An ordered sequence of steps with an identity.

    Attributes:
        identity: Normalized path or id; run state is keyed by it.
        name: Display name.
        steps: Steps in declaration order.
        description: Optional description.
        variables: Declared variable defaults.

    Raises:
        DefinitionParseError: On construction, if step indices are not
            unique and strictly increasing.
    """

    identity: str
    name: str
    steps: tuple[Step, ...]
    description: str = ""
    variables: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        previous: int | None = None
        for step in self.steps:
            if previous is not None and step.index <= previous:
                reason = "duplicated" if step.index == previous else "out of order"
                raise DefinitionParseError(
                    f"Step indices must be unique and increasing; step {step.index} "
                    f"is {reason} (follows step {previous})",
                    source=self.identity,
                    step_index=step.index,
                )
            previous = step.index

    @classmethod
    def from_markup(
        cls,
        identity: str,
        markup: str,
        *,
        name: str | None = None,
        description: str = "",
        variables: dict[str, Any] | None = None,
        parser: ContentParser | None = None,
    ) -> WorkflowDefinition:
        """Build a definition from instructions markup containing ``<step>`` tags."""
        parser = parser if parser is not None else ContentParser()
        steps = tuple(
            Step.from_markup(step, source=identity)
            for step in parser.parse_steps(markup, source=identity)
        )
        return cls(
            identity=identity,
            name=name or identity,
            steps=steps,
            description=description,
            variables=dict(variables or {}),
        )

    @property
    def step_indices(self) -> list[int]:
        return [step.index for step in self.steps]

    @property
    def first_index(self) -> int | None:
        return self.steps[0].index if self.steps else None

    def get_step(self, index: int) -> Step | None:
        for step in self.steps:
            if step.index == index:
                return step
        return None

    def next_index_after(self, index: int) -> int | None:
        """Index of the first declared step after ``index``, or None."""
        for step in self.steps:
            if step.index > index:
                return step.index
        return None

    def parse_all(self, parser: ContentParser | None = None) -> None:
        """Parse every step's markup so malformed content fails up front."""
        parser = parser if parser is not None else ContentParser()
        for step in self.steps:
            step.parse(parser)

