"""Atomic file writes for persisted run state.

Run state files are replaced, never edited in place: content goes to a
temporary file in the target directory which is then renamed over the
destination, so a reader sees either the previous snapshot or the new one.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from atomicwrites import atomic_write  # type: ignore[import-untyped]

__all__ = [
    "atomic_write_json",
    "atomic_write_text",
]


def atomic_write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    mkdir: bool = True,
) -> None:
    """Write text content to a file atomically.

    Args:
        path: Destination file path.
        content: Text content to write.
        encoding: Character encoding to use.
        mkdir: Create missing parent directories first.

    Raises:
        OSError: If the write or rename operation fails. The destination is
            left untouched in that case.
    """
    file_path = Path(path)

    if mkdir:
        file_path.parent.mkdir(parents=True, exist_ok=True)

    with atomic_write(str(file_path), mode="w", encoding=encoding, overwrite=True) as f:
        f.write(content)


def atomic_write_json(
    path: Path | str,
    data: Any,
    *,
    indent: int | None = 2,
    mkdir: bool = True,
) -> None:
    """Serialize ``data`` as JSON and write it atomically.

    Keys are sorted so that two snapshots of the same state produce the same
    bytes.

    Raises:
        OSError: If the write or rename operation fails.
        TypeError: If the data is not JSON-serializable.
    """
    content = json.dumps(data, indent=indent, ensure_ascii=False, sort_keys=True)
    atomic_write_text(path, content + "\n", mkdir=mkdir)
