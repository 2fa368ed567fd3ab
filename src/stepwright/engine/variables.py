"""Variable interpolation for step content and conditions.

Tokens take two forms:

- ``{{path}}``: the value at ``path`` in the bindings, or an error
- ``{{path|default}}``: the value at ``path``, or the literal ``default``

``path`` is a dot-separated sequence of keys (``user.name``) walked through
nested mappings. Whitespace around the path is ignored; the default is taken
verbatim and may be empty (``{{notes|}}``).

Substitution is a single textual pass: substituted values are never scanned
again, so a value containing ``{{...}}`` is inserted as-is.
"""

from __future__ import annotations

import itertools
import json
import re
from collections.abc import Callable, Mapping
from typing import Any

from stepwright.engine.errors import UndefinedVariableError

__all__ = ["VariableResolver", "stringify"]

_TOKEN_PATTERN = r"\{\{\s*([A-Za-z0-9_.\-]+)\s*(?:\|([^}]*))?\}\}"


def stringify(value: Any) -> str:
    """Render a bound value the way it appears when substituted into text.

    Examples:
        >>> stringify(True)
        'true'
        >>> stringify(None)
        'null'
        >>> stringify({"a": 1})
        '{"a": 1}'
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


class VariableResolver:
    """Resolves ``{{path}}`` tokens against a binding set.

    Each resolver compiles its own token pattern, so resolvers used by
    different engines share no state.

    Example:
        ```python
        resolver = VariableResolver()
        resolver.resolve("Hi {{user.name}}", {"user": {"name": "Bob"}})
        # "Hi Bob"
        resolver.resolve("{{missing|n/a}}", {})
        # "n/a"
        ```
    """

    def __init__(self) -> None:
        self._pattern = re.compile(_TOKEN_PATTERN)

    def resolve(self, text: str, bindings: Mapping[str, Any]) -> str:
        """Substitute every token in ``text``.

        Args:
            text: Text containing zero or more tokens.
            bindings: Variable bindings (nested mappings allowed).

        Returns:
            The text with all tokens replaced.

        Raises:
            UndefinedVariableError: If a token without a default names a path
                that is not bound. The error lists the top-level binding keys.
        """
        return self.substitute(text, bindings, lambda _, value: value)

    def substitute(
        self,
        text: str,
        bindings: Mapping[str, Any],
        render: Callable[[int, str], str],
    ) -> str:
        """Substitute every token with ``render(position, value)``.

        ``position`` counts tokens from zero in order of appearance and
        ``value`` is the text :meth:`resolve` would insert. Lets callers keep
        substituted text apart from text written in the original.

        Raises:
            UndefinedVariableError: As for :meth:`resolve`.
        """
        positions = itertools.count()

        def _substitute(match: re.Match[str]) -> str:
            path, default = match.group(1), match.group(2)
            found, value = self.lookup(path, bindings)
            if found:
                return render(next(positions), stringify(value))
            if default is not None:
                return render(next(positions), default)
            raise UndefinedVariableError(path, bindings.keys(), text=text)

        return self._pattern.sub(_substitute, text)

    def lookup(self, path: str, bindings: Mapping[str, Any]) -> tuple[bool, Any]:
        """Walk a dotted path through nested mappings.

        A bound ``None`` counts as found.

        Returns:
            ``(True, value)`` when every segment resolves, otherwise
            ``(False, None)``.
        """
        current: Any = bindings
        for segment in path.split("."):
            if not isinstance(current, Mapping) or segment not in current:
                return False, None
            current = current[segment]
        return True, current

    def tokens(self, text: str) -> list[str]:
        """List the paths referenced by tokens in ``text``, in order."""
        return [match.group(1) for match in self._pattern.finditer(text)]
