"""Parsing of step markup into steps, actions and checks.

Instructions are markdown interleaved with XML-like tags::

    <step n="1" goal="Collect requirements" optional="true" if="mode == 'full'">
      <ask var="audience">Who is the document for?</ask>
      <action>Draft the outline for {{audience}}</action>
      <check if="audience is empty">
        <goto step="1"/>
      </check>
      <template-output file="docs/outline.md">{{outline}}</template-output>
    </step>

Tags are read in document order; text outside tags is narrative and ignored.
Any malformed markup raises :class:`DefinitionParseError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from stepwright.engine.actions import (
    Action,
    Ask,
    Check,
    Goto,
    InvokeTask,
    InvokeWorkflow,
    Output,
    PlainAction,
)
from stepwright.engine.errors import DefinitionParseError
from stepwright.logging import get_logger

__all__ = [
    "StepContent",
    "StepMarkup",
    "ContentParser",
]

logger = get_logger(__name__)

_CONTAINER_TAGS = frozenset(
    {"check", "action", "ask", "output", "template-output", "elicit-required"}
)
_EMPTY_TAGS = frozenset({"goto", "invoke-workflow", "invoke-task"})


@dataclass(frozen=True, slots=True)
class StepContent:
    """Actions and checks parsed from one step's markup."""

    actions: tuple[Action, ...]
    checks: tuple[Check, ...]


@dataclass(frozen=True, slots=True)
class StepMarkup:
    """Attributes and raw body of one ``<step>`` tag."""

    index: int
    goal: str
    optional: bool
    guard: str | None
    content: str


class ContentParser:
    """Parses step markup.

    Each parser compiles its own patterns; parsers share no state.
    """

    def __init__(self) -> None:
        tags = "|".join(sorted(_CONTAINER_TAGS | _EMPTY_TAGS, key=len, reverse=True))
        self._open_tag = re.compile(
            rf"<(?P<tag>{tags})(?=[\s/>])"
            r'(?P<attrs>(?:[^>"]|"[^"]*")*?)(?P<selfclose>/)?>'
        )
        self._attribute = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')
        self._step = re.compile(
            r'<step(?=[\s>])(?P<attrs>(?:[^>"]|"[^"]*")*)>'
            r"(?P<body>.*?)</step\s*>",
            re.DOTALL,
        )

    def parse_steps(self, markup: str, source: str | None = None) -> list[StepMarkup]:
        """Extract every ``<step>`` block from instructions markup.

        Args:
            markup: Instructions text.
            source: Definition identity, reported in errors.

        Returns:
            Step blocks in document order.

        Raises:
            DefinitionParseError: If a step lacks ``n`` or ``goal``, has a
                non-integer ``n`` or an ``optional`` other than true/false.
        """
        steps: list[StepMarkup] = []
        for match in self._step.finditer(markup):
            attrs = self._attributes(match["attrs"])
            snippet = f"<step{match['attrs']}>"
            number = attrs.get("n")
            goal = attrs.get("goal")
            if number is None or goal is None:
                raise DefinitionParseError(
                    "Step is missing a required attribute (n and goal are required)",
                    source=source,
                    snippet=snippet,
                )
            if not number.strip().isdigit():
                raise DefinitionParseError(
                    f"Step number must be a non-negative integer, got '{number}'",
                    source=source,
                    snippet=snippet,
                )
            optional = attrs.get("optional", "false").strip().lower()
            if optional not in ("true", "false"):
                raise DefinitionParseError(
                    f"optional must be 'true' or 'false', got '{optional}'",
                    source=source,
                    step_index=int(number),
                    snippet=snippet,
                )
            guard = attrs.get("if")
            steps.append(
                StepMarkup(
                    index=int(number),
                    goal=goal,
                    optional=optional == "true",
                    guard=guard if guard and guard.strip() else None,
                    content=match["body"].strip(),
                )
            )
        return steps

    def parse_content(
        self,
        content: str,
        step_index: int | None = None,
        source: str | None = None,
    ) -> StepContent:
        """Parse a step body into its top-level actions and its checks.

        Raises:
            DefinitionParseError: On unclosed tags, nested checks, a goto
                without an integer ``step``, an invoke without ``path`` or a
                check without ``if``.
        """
        actions: list[Action] = []
        checks: list[Check] = []
        for item in self._scan(content, step_index, source, in_check=False):
            if isinstance(item, Check):
                checks.append(item)
            else:
                actions.append(item)
        return StepContent(actions=tuple(actions), checks=tuple(checks))

    def _scan(
        self,
        content: str,
        step_index: int | None,
        source: str | None,
        *,
        in_check: bool,
    ) -> list[Action | Check]:
        items: list[Action | Check] = []
        position = 0
        while match := self._open_tag.search(content, position):
            tag = match["tag"]
            attrs = self._attributes(match["attrs"])
            snippet = match.group(0)

            if tag in _EMPTY_TAGS:
                position = match.end()
                closing = f"</{tag}>"
                if content.startswith(closing, position):
                    position += len(closing)
                items.append(self._empty_action(tag, attrs, snippet, step_index, source))
                continue

            if tag == "check" and in_check:
                raise DefinitionParseError(
                    "<check> blocks cannot be nested",
                    source=source,
                    step_index=step_index,
                    snippet=snippet,
                )
            if match["selfclose"]:
                raise DefinitionParseError(
                    f"<{tag}> needs a body and cannot be self-closing",
                    source=source,
                    step_index=step_index,
                    snippet=snippet,
                )
            closing = f"</{tag}>"
            end = content.find(closing, match.end())
            if end == -1:
                raise DefinitionParseError(
                    f"Unclosed <{tag}> tag",
                    source=source,
                    step_index=step_index,
                    snippet=snippet,
                )
            body = content[match.end() : end].strip()
            position = end + len(closing)

            if tag == "check":
                items.append(self._check(attrs, body, snippet, step_index, source))
                continue

            if not body:
                logger.debug("empty_action_skipped", tag=tag, step_index=step_index)
                continue
            items.append(self._container_action(tag, attrs, body))
        return items

    def _check(
        self,
        attrs: dict[str, str],
        body: str,
        snippet: str,
        step_index: int | None,
        source: str | None,
    ) -> Check:
        condition = attrs.get("if", "").strip()
        if not condition:
            raise DefinitionParseError(
                '<check> requires an if="..." condition',
                source=source,
                step_index=step_index,
                snippet=snippet,
            )
        nested = self._scan(body, step_index, source, in_check=True)
        return Check(
            condition=condition,
            actions=tuple(item for item in nested if not isinstance(item, Check)),
        )

    def _container_action(self, tag: str, attrs: dict[str, str], body: str) -> Action:
        condition = attrs.get("if") or None
        if tag == "action":
            return PlainAction(content=body, condition=condition)
        if tag == "ask":
            return Ask(content=body, var=attrs.get("var") or None, condition=condition)
        if tag == "elicit-required":
            return Ask(
                content=body,
                var=attrs.get("var") or None,
                elicit=True,
                condition=condition,
            )
        if tag == "template-output":
            return Output(content=body, file=attrs.get("file") or None, condition=condition)
        return Output(content=body, condition=condition)

    def _empty_action(
        self,
        tag: str,
        attrs: dict[str, str],
        snippet: str,
        step_index: int | None,
        source: str | None,
    ) -> Action:
        condition = attrs.get("if") or None
        if tag == "goto":
            target = attrs.get("step", "").strip()
            if not target.isdigit():
                raise DefinitionParseError(
                    f'<goto> requires an integer step="N", got "{target}"',
                    source=source,
                    step_index=step_index,
                    snippet=snippet,
                )
            return Goto(step=int(target), condition=condition)

        path = attrs.get("path", "").strip()
        if not path:
            raise DefinitionParseError(
                f'<{tag}> requires a path="..." attribute',
                source=source,
                step_index=step_index,
                snippet=snippet,
            )
        if tag == "invoke-workflow":
            return InvokeWorkflow(content=path, condition=condition)
        return InvokeTask(content=path, condition=condition)

    def _attributes(self, text: str) -> dict[str, str]:
        return {name: value for name, value in self._attribute.findall(text)}
