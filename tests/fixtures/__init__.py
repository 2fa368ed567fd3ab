"""Shared test fixtures for the stepwright test suite.

Fixtures are registered through ``pytest_plugins`` in ``tests/conftest.py``.

Engine doubles (from tests/fixtures/engine.py)
----------------------------------------------

Classes:
    ScriptedOperator: Operator answering asks from a queue and approving or
        rejecting outputs; records every call.
    DictDefinitionLoader: DefinitionLoader serving markup registered in a
        dict, with ``mem://`` identities.
    MemoryFileSystem: FileSystem keeping existing paths and writes in memory.
    EventRecorder: Async event callback collecting progress events.

Fixtures:
    operator, loader, store, filesystem, events: fresh doubles per test.
    make_engine: Factory building a WorkflowEngine wired to the doubles.

Configuration (from tests/fixtures/config.py)
---------------------------------------------

Fixtures:
    clean_env: Removes STEPWRIGHT_* variables for the test.
    project_dir: Temporary working directory containing a stepwright.yaml.

Example:
    >>> async def test_run(make_engine, loader):
    ...     loader.add("demo", '<step n="1" goal="Greet"><action>Hi</action></step>')
    ...     state = await make_engine("demo").execute()
    ...     assert state.status is RunStatus.COMPLETED
"""

from __future__ import annotations

from tests.fixtures.engine import (
    DictDefinitionLoader,
    EventRecorder,
    MemoryFileSystem,
    ScriptedOperator,
)

__all__ = [
    "DictDefinitionLoader",
    "EventRecorder",
    "MemoryFileSystem",
    "ScriptedOperator",
]
