"""Loading workflow definitions.

The engine reads definitions through the :class:`DefinitionLoader` protocol.
:class:`FileDefinitionLoader` handles the on-disk formats:

- a workflow YAML file (``.yaml``/``.yml``) validated against
  :class:`~stepwright.engine.schema.WorkflowFile`, whose instructions
  markdown holds the ``<step>`` blocks;
- a directory containing ``workflow.yaml``;
- a bare markdown task or instructions file. A task without ``<step>``
  blocks becomes a single step; if it has no action tags either, its whole
  text becomes one plain action.

Path placeholders expanded in workflow files: ``{project-root}`` (the root
context), ``{installed_path}`` (the workflow's directory, or its
``installed_path`` key) and ``{config_source}:key`` (a value looked up in
the YAML file named by ``config_source``). ``date:system-generated``
becomes today's date.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, Protocol

import anyio
import yaml
from pydantic import ValidationError

from stepwright.engine.content import ContentParser
from stepwright.engine.definition import Step, WorkflowDefinition
from stepwright.engine.errors import DefinitionParseError
from stepwright.engine.schema import WorkflowFile
from stepwright.logging import get_logger

__all__ = [
    "DefinitionLoader",
    "FileDefinitionLoader",
    "WORKFLOW_FILENAME",
]

logger = get_logger(__name__)

WORKFLOW_FILENAME = "workflow.yaml"
DEFAULT_INSTRUCTIONS = "instructions.md"
_YAML_SUFFIXES = (".yaml", ".yml")


class DefinitionLoader(Protocol):
    """Protocol for turning a workflow reference into a definition."""

    def identity_of(self, reference: str) -> str:
        """Normalized identity for ``reference``, without loading it."""
        ...

    async def load(self, reference: str) -> WorkflowDefinition:
        """Load and parse the definition for ``reference``.

        Raises:
            DefinitionParseError: If the definition is missing or malformed.
        """
        ...


class FileDefinitionLoader:
    """Loads workflow and task definitions from the filesystem.

    Relative references resolve against ``root_context``. The identity of a
    definition is the absolute path of its workflow or task file.
    """

    def __init__(self, root_context: Path) -> None:
        self._root_context = root_context.resolve()
        self._parser = ContentParser()
        self._config_reference = re.compile(r"\{config_source\}:([A-Za-z0-9_.\-]+)")

    @property
    def root_context(self) -> Path:
        return self._root_context

    def identity_of(self, reference: str) -> str:
        path = Path(self._expand(reference, {"{project-root}": str(self._root_context)}))
        if not path.is_absolute():
            path = self._root_context / path
        if path.is_dir():
            path = path / WORKFLOW_FILENAME
        return str(path.resolve())

    async def load(self, reference: str) -> WorkflowDefinition:
        identity = self.identity_of(reference)
        path = Path(identity)
        text = await self._read(path, identity, what="Workflow definition")

        if path.suffix.lower() in _YAML_SUFFIXES:
            definition = await self._load_workflow_file(path, identity, text)
        else:
            definition = self._load_task(path, identity, text)

        logger.debug(
            "definition_loaded",
            identity=identity,
            steps=definition.step_indices,
        )
        return definition

    async def _load_workflow_file(
        self,
        path: Path,
        identity: str,
        text: str,
    ) -> WorkflowDefinition:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DefinitionParseError(f"YAML syntax error: {e}", source=identity) from e
        if not isinstance(data, dict):
            raise DefinitionParseError(
                f"Workflow file must be a mapping, got {type(data).__name__}",
                source=identity,
            )

        try:
            workflow = WorkflowFile(**data)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise DefinitionParseError(
                f"Schema validation failed: {details}", source=identity
            ) from e

        placeholders = {"{project-root}": str(self._root_context)}
        installed_path = (
            self._expand(workflow.installed_path, placeholders)
            if workflow.installed_path
            else str(path.parent)
        )
        placeholders["{installed_path}"] = installed_path

        instructions = Path(
            self._expand(workflow.instructions or DEFAULT_INSTRUCTIONS, placeholders)
        )
        if not instructions.is_absolute():
            instructions = path.parent / instructions
        markup = await self._read(instructions, identity, what="Instructions file")

        config_data: dict[str, Any] = {}
        if workflow.config_source:
            config_path = Path(self._expand(workflow.config_source, placeholders))
            if not config_path.is_absolute():
                config_path = self._root_context / config_path
            config_data = await self._load_config_source(config_path, identity)

        today = date.today().isoformat()

        def expand_value(value: str) -> Any:
            value = self._expand(value, placeholders).replace(
                "date:system-generated", today
            )
            return self._resolve_config_references(value, config_data, identity)

        variables = _plain_values(_map_strings(workflow.variables, expand_value))

        definition = WorkflowDefinition.from_markup(
            identity,
            markup,
            name=workflow.name,
            description=workflow.description,
            variables=variables,
            parser=self._parser,
        )
        if not definition.steps:
            raise DefinitionParseError(
                f"No <step> blocks found in {instructions}", source=identity
            )
        return definition

    def _load_task(self, path: Path, identity: str, text: str) -> WorkflowDefinition:
        definition = WorkflowDefinition.from_markup(
            identity, text, name=path.stem, parser=self._parser
        )
        if definition.steps:
            return definition

        content = text.strip()
        parsed = self._parser.parse_content(content, step_index=1, source=identity)
        if not parsed.actions and not parsed.checks:
            content = f"<action>{content}</action>"
        step = Step(index=1, goal=f"Run {path.stem}", content=content, source=identity)
        return WorkflowDefinition(identity=identity, name=path.stem, steps=(step,))

    async def _load_config_source(self, path: Path, identity: str) -> dict[str, Any]:
        text = await self._read(path, identity, what="Config source")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DefinitionParseError(
                f"YAML syntax error in config source {path}: {e}", source=identity
            ) from e
        return data if isinstance(data, dict) else {}

    def _resolve_config_references(
        self,
        value: str,
        config_data: dict[str, Any],
        identity: str,
    ) -> Any:
        def lookup(key: str) -> Any:
            current: Any = config_data
            for segment in key.split("."):
                if not isinstance(current, dict) or segment not in current:
                    raise DefinitionParseError(
                        f"Config reference '{{config_source}}:{key}' not found "
                        f"in config source",
                        source=identity,
                    )
                current = current[segment]
            return current

        # A value that is exactly one reference keeps the referenced type.
        whole = self._config_reference.fullmatch(value)
        if whole:
            return lookup(whole.group(1))
        return self._config_reference.sub(lambda m: str(lookup(m.group(1))), value)

    @staticmethod
    def _expand(value: str, placeholders: dict[str, str]) -> str:
        for placeholder, replacement in placeholders.items():
            value = value.replace(placeholder, replacement)
        return value

    @staticmethod
    async def _read(path: Path, identity: str, *, what: str) -> str:
        try:
            return await anyio.Path(path).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DefinitionParseError(f"{what} not found at {path}", source=identity) from e
        except OSError as e:
            raise DefinitionParseError(
                f"{what} at {path} could not be read: {e}", source=identity
            ) from e


def _map_strings(value: Any, mapper: Callable[[str], Any]) -> Any:
    """Apply ``mapper`` to every string inside nested dicts and lists."""
    if isinstance(value, str):
        return mapper(value)
    if isinstance(value, list):
        return [_map_strings(item, mapper) for item in value]
    if isinstance(value, dict):
        return {key: _map_strings(item, mapper) for key, item in value.items()}
    return value


def _plain_values(value: Any) -> Any:
    """Render YAML dates and timestamps as ISO 8601 strings.

    Variables end up in persisted run state, which holds JSON types only.
    """
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain_values(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain_values(item) for key, item in value.items()}
    return value
