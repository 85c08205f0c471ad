"""Shared helpers for the JSON-file stores.

Writes go through a temp file in the same directory plus ``os.replace`` so a
reader never sees a half-written file.  A file that exists but does not parse
raises :class:`StoreCorrupted`; callers must not overwrite it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from filelock import FileLock

from promptgate.errors import StoreCorrupted

log = logging.getLogger(__name__)


def read_rows(path: Path) -> list[dict]:
    """Load a JSON list from *path*.  A missing file is an empty list."""
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        log.error("Unreadable store file", extra={"path": str(path), "error": str(exc)})
        raise StoreCorrupted(path, str(exc)) from exc
    if not isinstance(data, list):
        log.error("Store file is not a JSON list", extra={"path": str(path)})
        raise StoreCorrupted(path, f"expected a list, got {type(data).__name__}")
    return data


def write_rows(path: Path, rows: list[dict]) -> None:
    """Atomically replace *path* with *rows*."""
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2, default=str)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def file_lock(path: Path) -> FileLock:
    """Cross-process lock guarding read-check-write cycles on *path*."""
    return FileLock(str(path.with_name(path.name + ".lock")))
