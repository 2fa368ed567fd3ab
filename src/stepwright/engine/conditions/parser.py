"""Parser for guard conditions.

Turns a condition string into an expression tree of :class:`Connective`,
:class:`Negation` and predicate nodes. Variable tokens arrive replaced by
placeholders (see :func:`placeholder`), so substituted values can never add
connectives, operators or keywords. Connectives are parsed by a Lark LALR
grammar (``grammar.lark``); the text between connectives is then classified
into one of the predicate forms:

- ``file exists <path>``, ``file <path> exists``, ``file <path> not exists``
- ``<subject> is defined`` / ``is not defined``
- ``<subject> is true`` / ``is false``
- ``<subject> is empty`` / ``is not empty``
- ``<left> <op> <right>`` with ``op`` one of ``== != <= >= < >``
- the bare literals ``true`` and ``false``, written or substituted

Classification happens for every predicate at parse time, so a malformed
predicate is reported even when evaluation would short-circuit past it.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

from lark import Lark, Token, Transformer
from lark.exceptions import LarkError, VisitError

from stepwright.engine.errors import ConditionEvaluationError

__all__ = [
    "PredicateKind",
    "FilePredicate",
    "IsPredicate",
    "Comparison",
    "LiteralPredicate",
    "Negation",
    "Connective",
    "ConditionNode",
    "ConditionParser",
    "placeholder",
    "has_placeholder",
    "fill_placeholders",
]

_GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"

# Private-use delimiters: never whitespace, word characters or operators.
_PLACEHOLDER = "\ue000{}\ue001"
_PLACEHOLDER_PATTERN = re.compile("\ue000(\\d+)\ue001")


def placeholder(position: int) -> str:
    """Marker standing in for the substituted value at ``position``."""
    return _PLACEHOLDER.format(position)


def has_placeholder(text: str) -> bool:
    return _PLACEHOLDER_PATTERN.search(text) is not None


def fill_placeholders(text: str, substituted: Sequence[str]) -> str:
    """Put the substituted values back in place of their markers."""
    return _PLACEHOLDER_PATTERN.sub(lambda m: substituted[int(m.group(1))], text)


class PredicateKind(str, Enum):
    """The ``is ...`` tests a subject can be put to."""

    DEFINED = "defined"
    EMPTY = "empty"
    TRUE = "true"
    FALSE = "false"


@dataclass(frozen=True, slots=True)
class FilePredicate:
    """``file exists <path>``; ``negated`` for ``file <path> not exists``."""

    text: str
    path: str
    negated: bool = False


@dataclass(frozen=True, slots=True)
class IsPredicate:
    """``<subject> is [not] <test>``. The subject may be empty."""

    text: str
    subject: str
    test: PredicateKind
    negated: bool = False


@dataclass(frozen=True, slots=True)
class Comparison:
    """Binary comparison between two operands."""

    text: str
    left: str
    operator: Literal["==", "!=", "<", ">", "<=", ">="]
    right: str


@dataclass(frozen=True, slots=True)
class LiteralPredicate:
    """Bare ``true`` or ``false``."""

    text: str
    value: bool


@dataclass(frozen=True, slots=True)
class Negation:
    """``NOT <operand>``."""

    operand: ConditionNode


@dataclass(frozen=True, slots=True)
class Connective:
    """``<left> AND|OR <right>``, evaluated left operand first."""

    operator: Literal["AND", "OR"]
    left: ConditionNode
    right: ConditionNode


ConditionNode = (
    FilePredicate
    | IsPredicate
    | Comparison
    | LiteralPredicate
    | Negation
    | Connective
)


class _PredicateClassifier:
    """Compiled patterns for classifying predicate text."""

    def __init__(self) -> None:
        self._file_exists = re.compile(r"^file\s+exists\s+(?P<path>.+)$")
        self._file_not_exists = re.compile(r"^file\s+(?P<path>.+?)\s+not\s+exists$")
        self._file_suffix_exists = re.compile(r"^file\s+(?P<path>.+?)\s+exists$")
        self._test = re.compile(
            r"^(?P<subject>.*?)\s*\bis\s+(?P<negated>not\s+)?"
            r"(?P<test>defined|empty|true|false)$"
        )
        self._comparison = re.compile(
            r"^(?P<left>.*?)\s*(?P<operator>==|!=|<=|>=|<|>)\s*(?P<right>.*)$"
        )

    def classify(
        self,
        text: str,
        condition: str,
        substituted: Sequence[str] = (),
    ) -> ConditionNode:
        if match := self._file_exists.match(text):
            return FilePredicate(text=text, path=match["path"])
        if match := self._file_not_exists.match(text):
            return FilePredicate(text=text, path=match["path"], negated=True)
        if match := self._file_suffix_exists.match(text):
            return FilePredicate(text=text, path=match["path"])
        if match := self._test.match(text):
            return IsPredicate(
                text=text,
                subject=match["subject"],
                test=PredicateKind(match["test"]),
                negated=match["negated"] is not None,
            )
        if match := self._comparison.match(text):
            return Comparison(
                text=text,
                left=match["left"],
                operator=match["operator"],  # type: ignore[arg-type]
                right=match["right"],
            )
        filled = fill_placeholders(text, substituted).strip()
        if filled in ("true", "false"):
            return LiteralPredicate(text=text, value=filled == "true")
        raise ConditionEvaluationError(
            f"unrecognized predicate '{filled}'",
            condition=condition,
        )


class _ConditionTransformer(Transformer[Token, ConditionNode]):
    """Transform the Lark parse tree into condition nodes."""

    def __init__(
        self,
        classifier: _PredicateClassifier,
        condition: str,
        substituted: Sequence[str],
    ) -> None:
        super().__init__()
        self._classifier = classifier
        self._condition = condition
        self._substituted = substituted

    def and_(self, items: list[ConditionNode]) -> Connective:
        return Connective(operator="AND", left=items[0], right=items[1])

    def or_(self, items: list[ConditionNode]) -> Connective:
        return Connective(operator="OR", left=items[0], right=items[1])

    def not_(self, items: list[ConditionNode]) -> Negation:
        return Negation(operand=items[0])

    def predicate(self, items: list[Token]) -> ConditionNode:
        return self._classifier.classify(
            str(items[0]).strip(), self._condition, self._substituted
        )


class ConditionParser:
    """Parses condition text into a :data:`ConditionNode` tree.

    Each parser owns its Lark instance and compiled patterns.
    """

    def __init__(self) -> None:
        self._lark = Lark(
            _GRAMMAR_PATH.read_text(),
            parser="lalr",
            start="start",
        )
        self._classifier = _PredicateClassifier()

    def parse(
        self,
        text: str,
        condition: str | None = None,
        substituted: Sequence[str] = (),
    ) -> ConditionNode:
        """Parse ``text``.

        Args:
            text: Condition with variable tokens replaced by placeholders.
            condition: The raw condition as written, reported in errors.
                Defaults to ``text``.
            substituted: Values behind the placeholders, by position.

        Raises:
            ConditionEvaluationError: If the text does not parse or contains
                an unrecognized predicate.
        """
        raw = condition if condition is not None else text
        normalized = " ".join(text.split())
        if not normalized:
            raise ConditionEvaluationError("condition is empty", condition=raw)

        try:
            tree = self._lark.parse(normalized)
            return _ConditionTransformer(self._classifier, raw, substituted).transform(
                tree
            )
        except VisitError as e:
            if isinstance(e.orig_exc, ConditionEvaluationError):
                raise e.orig_exc from None
            raise
        except LarkError as e:
            shown = fill_placeholders(normalized, substituted)
            raise ConditionEvaluationError(
                f"malformed condition '{shown}' ({type(e).__name__})",
                condition=raw,
            ) from e
