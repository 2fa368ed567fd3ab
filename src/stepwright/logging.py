"""Structured logging for stepwright.

Engine modules log snake_case events (``step_started``, ``state_persisted``)
with keyword context through structlog. A run binds its ``workflow``
identity and CLI commands bind ``command``. Everything goes to stderr, so
logs never mix with command output:

- readable console lines by default
- one JSON object per line when ``STEPWRIGHT_LOG_FORMAT=json``

The level comes from ``STEPWRIGHT_LOG_LEVEL`` (default ``INFO``) unless the
CLI passes one derived from ``-v``/``-q``. Records from stdlib loggers are
rendered by the same pipeline.

Usage:
    from stepwright.logging import configure_logging, get_logger

    configure_logging()
    log = get_logger(__name__).bind(workflow="workflows/create-prd")
    log.info("step_started", step_index=3)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
]

LOG_FORMAT_ENV_VAR = "STEPWRIGHT_LOG_FORMAT"
LOG_LEVEL_ENV_VAR = "STEPWRIGHT_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

# Dependencies whose records only matter when debugging them.
_NOISY_LOGGERS = ("asyncio", "markdown_it")


def _level_from_env() -> int:
    name = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _json_requested() -> bool:
    return os.environ.get(LOG_FORMAT_ENV_VAR, "").strip().lower() == "json"


def _relative_workflow(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Show workflow identities inside the working directory as relative paths."""
    workflow = event_dict.get("workflow")
    if isinstance(workflow, str) and os.path.isabs(workflow):
        path, cwd = Path(workflow), Path.cwd()
        if path.is_relative_to(cwd):
            event_dict["workflow"] = str(path.relative_to(cwd))
    return event_dict


def _pre_chain() -> list[Processor]:
    """Processors every record goes through, structlog or stdlib."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_chain(json_output: bool) -> list[Processor]:
    if json_output:
        # Full identities: JSON lines are read by tools, not people.
        return [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return [
        _relative_workflow,
        structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def configure_logging(
    *,
    force_json: bool = False,
    level: int | None = None,
) -> None:
    """Configure structlog and the root logger.

    Safe to call more than once; each call replaces the root handler, which
    is how the CLI applies ``-v``/``-q`` after reading its options.

    Args:
        force_json: Emit JSON lines regardless of ``STEPWRIGHT_LOG_FORMAT``.
        level: Log level. Defaults to ``STEPWRIGHT_LOG_LEVEL``.
    """
    json_output = force_json or _json_requested()
    log_level = level if level is not None else _level_from_env()

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_render_chain(json_output),
            ],
        )
    )

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually ``get_logger(__name__)``."""
    log: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return log


def bind_context(**context: Any) -> None:
    """Add context to every record logged from the current task.

    Backed by contextvars, so the context follows the task across awaits.
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
