"""Filesystem capability used by conditions and outputs.

The engine never touches the disk directly while running steps: file
predicates (``file exists <path>``) and ``<template-output file="...">``
writes go through a :class:`FileSystem`, awaited like any other I/O.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import anyio

__all__ = [
    "FileSystem",
    "LocalFileSystem",
]


class FileSystem(Protocol):
    """Protocol for the file operations a workflow may perform."""

    async def exists(self, path: Path) -> bool:
        """Return True if ``path`` exists."""
        ...

    async def write_text(self, path: Path, text: str) -> None:
        """Write ``text`` to ``path``, creating parent directories."""
        ...


class LocalFileSystem:
    """FileSystem backed by the local disk via ``anyio.Path``."""

    async def exists(self, path: Path) -> bool:
        return await anyio.Path(path).exists()

    async def write_text(self, path: Path, text: str) -> None:
        target = anyio.Path(path)
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_text(text, encoding="utf-8")
