"""Evaluation of guard conditions against variable bindings."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence, Sized
from pathlib import Path
from typing import Any, assert_never

from stepwright.engine.conditions.parser import (
    Comparison,
    ConditionNode,
    ConditionParser,
    Connective,
    FilePredicate,
    IsPredicate,
    LiteralPredicate,
    Negation,
    PredicateKind,
    fill_placeholders,
    has_placeholder,
    placeholder,
)
from stepwright.engine.errors import ConditionEvaluationError
from stepwright.engine.filesystem import FileSystem
from stepwright.engine.variables import VariableResolver
from stepwright.logging import get_logger

__all__ = ["ConditionEvaluator"]

logger = get_logger(__name__)

_NUMBER_PATTERN = r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$"
_PATH_PATTERN = r"^[A-Za-z_][A-Za-z0-9_\-]*(\.[A-Za-z0-9_\-]+)*$"


class ConditionEvaluator:
    """Evaluates guard conditions such as ``mode == "fast" AND NOT skip is true``.

    Variable tokens in the condition are resolved first, then the text is
    parsed and evaluated left to right. ``AND`` and ``OR`` have equal
    precedence, so ``A OR B AND C`` is ``(A OR B) AND C``. Evaluation
    short-circuits: the right operand of a decided connective is not
    evaluated (so its file check, for example, never runs).

    Operands are read as follows: quoted text is a string; a name written in
    the condition and bound in the variables yields its value; otherwise the
    text is read as a number, ``true``/``false``, ``null`` or, failing all of
    those, as bare text. Values substituted from ``{{...}}`` tokens are only
    ever read as literals and take no part in the condition's structure.

    Attributes:
        root_context: Directory that relative paths in file predicates are
            resolved against.

    Example:
        ```python
        evaluator = ConditionEvaluator(LocalFileSystem(), Path.cwd())
        await evaluator.evaluate("{{count}} > 3 AND ready is true",
                                 {"count": 5, "ready": True})  # True
        ```
    """

    def __init__(
        self,
        filesystem: FileSystem,
        root_context: Path,
        resolver: VariableResolver | None = None,
    ) -> None:
        self.root_context = root_context
        self._filesystem = filesystem
        self._resolver = resolver if resolver is not None else VariableResolver()
        self._parser = ConditionParser()
        self._number = re.compile(_NUMBER_PATTERN)
        self._path = re.compile(_PATH_PATTERN)

    async def evaluate(self, condition: str, bindings: Mapping[str, Any]) -> bool:
        """Evaluate ``condition``.

        Args:
            condition: Raw condition text, possibly containing ``{{...}}``.
            bindings: Current variable bindings.

        Returns:
            Whether the condition holds.

        Raises:
            UndefinedVariableError: If a token in the condition is unbound
                and has no default.
            ConditionEvaluationError: If the condition is malformed or
                compares incompatible values.
        """
        substituted: list[str] = []

        def _mark(position: int, value: str) -> str:
            substituted.append(value)
            return placeholder(position)

        marked = self._resolver.substitute(condition, bindings, _mark)
        tree = self._parser.parse(marked, condition=condition, substituted=substituted)
        result = await self._evaluate_node(tree, bindings, substituted, condition)
        logger.debug(
            "condition_evaluated",
            condition=condition,
            resolved=fill_placeholders(marked, substituted),
            result=result,
        )
        return result

    async def _evaluate_node(
        self,
        node: ConditionNode,
        bindings: Mapping[str, Any],
        substituted: Sequence[str],
        condition: str,
    ) -> bool:
        context = (bindings, substituted, condition)
        match node:
            case Connective(operator="AND", left=left, right=right):
                if not await self._evaluate_node(left, *context):
                    return False
                return await self._evaluate_node(right, *context)
            case Connective(operator="OR", left=left, right=right):
                if await self._evaluate_node(left, *context):
                    return True
                return await self._evaluate_node(right, *context)
            case Connective():
                raise ConditionEvaluationError(
                    f"unknown connective '{node.operator}'", condition=condition
                )
            case Negation(operand=operand):
                return not await self._evaluate_node(operand, *context)
            case FilePredicate():
                return await self._file_exists(node, substituted)
            case IsPredicate():
                return self._test(node, bindings, substituted)
            case Comparison():
                return self._compare(node, bindings, substituted, condition)
            case LiteralPredicate(value=value):
                return value
            case _:
                assert_never(node)

    async def _file_exists(
        self, node: FilePredicate, substituted: Sequence[str]
    ) -> bool:
        path = Path(_unquote(fill_placeholders(node.path, substituted)))
        if not path.is_absolute():
            path = self.root_context / path
        exists = await self._filesystem.exists(path)
        return not exists if node.negated else exists

    def _test(
        self,
        node: IsPredicate,
        bindings: Mapping[str, Any],
        substituted: Sequence[str],
    ) -> bool:
        found, value = self._operand(node.subject, bindings, substituted)
        match node.test:
            case PredicateKind.DEFINED:
                result = found
            case PredicateKind.EMPTY:
                result = not found or _is_empty(value)
            case PredicateKind.TRUE:
                result = found and value is True
            case PredicateKind.FALSE:
                result = found and value is False
            case _:
                assert_never(node.test)
        return not result if node.negated else result

    def _compare(
        self,
        node: Comparison,
        bindings: Mapping[str, Any],
        substituted: Sequence[str],
        condition: str,
    ) -> bool:
        _, left = self._operand(node.left, bindings, substituted)
        _, right = self._operand(node.right, bindings, substituted)
        left, right = self._coerce_pair(left, right)

        if node.operator == "==":
            return bool(left == right)
        if node.operator == "!=":
            return bool(left != right)

        if not (
            (_is_number(left) and _is_number(right))
            or (isinstance(left, str) and isinstance(right, str))
        ):
            text = fill_placeholders(node.text, substituted)
            raise ConditionEvaluationError(
                f"cannot order {type(left).__name__} {left!r} against "
                f"{type(right).__name__} {right!r} in '{text}'",
                condition=condition,
            )
        match node.operator:
            case "<":
                return bool(left < right)
            case ">":
                return bool(left > right)
            case "<=":
                return bool(left <= right)
            case ">=":
                return bool(left >= right)
        raise ConditionEvaluationError(
            f"unknown operator '{node.operator}'", condition=condition
        )

    def _operand(
        self,
        text: str,
        bindings: Mapping[str, Any],
        substituted: Sequence[str],
    ) -> tuple[bool, Any]:
        """Read an operand as a bound value or a literal.

        Only a name written in the condition itself is looked up. Operands
        containing substituted values are literals.

        Returns:
            ``(found, value)`` where ``found`` is False for an empty operand
            and for a name that looks like a variable path but is not bound.
        """
        text = text.strip()
        if has_placeholder(text):
            text = fill_placeholders(text, substituted).strip()
            if not text:
                return False, ""
            if _is_quoted(text):
                return True, text[1:-1]
            return True, self._literal(text)
        if not text:
            return False, ""
        if _is_quoted(text):
            return True, text[1:-1]
        if self._path.match(text):
            found, value = self._resolver.lookup(text, bindings)
            if found:
                return True, value
            if text in ("true", "false", "null"):
                return True, self._literal(text)
            return False, text
        return True, self._literal(text)

    def _literal(self, text: str) -> Any:
        if text == "true":
            return True
        if text == "false":
            return False
        if text == "null":
            return None
        if self._number.match(text):
            number = float(text)
            return int(number) if number.is_integer() and "." not in text else number
        return text

    def _coerce_pair(self, left: Any, right: Any) -> tuple[Any, Any]:
        """Read numeric strings as numbers when compared against a number."""
        if _is_number(left) and isinstance(right, str) and self._number.match(right):
            return left, self._literal(right)
        if _is_number(right) and isinstance(left, str) and self._number.match(left):
            return self._literal(left), right
        return left, right


def _is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'"


def _unquote(text: str) -> str:
    text = text.strip()
    return text[1:-1] if _is_quoted(text) else text


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, Sized):
        return len(value) == 0
    return False
