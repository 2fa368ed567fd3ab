from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from click.testing import CliRunner

# Register fixture plugins from tests/fixtures/
pytest_plugins = [
    "tests.fixtures.config",
    "tests.fixtures.engine",
]


@pytest.fixture(autouse=True)
def configure_test_logging() -> Generator[None, None, None]:
    """Configure structlog for tests.

    Logs go to stderr at WARNING level so they stay out of captured stdout.
    Context bound during a test is cleared afterwards.
    """
    from stepwright.logging import clear_context, configure_logging

    configure_logging(level=logging.WARNING)
    yield
    clear_context()


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()
