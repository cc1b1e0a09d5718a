# src/storage/atomic.py — v1
"""Whole-file atomic writes and conflict-free destination names.

Writes go to a temp file in the target directory followed by os.replace,
so a crash mid-write leaves either the old file or the new one.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Replace *path* with *content* in a single rename."""
    atomic_write_bytes(path, content.encode(encoding))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace *path* with *data* in a single rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            logger.debug("Could not remove temp file %s", tmp_path)
        raise


def resolve_conflict(path: Path) -> Path:
    """Return *path*, or the first free ``name_2.ext``, ``name_3.ext``... sibling."""
    path = Path(path)
    if not path.exists():
        return path
    counter = 2
    while True:
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1
