# src/logging/context.py — v2
"""Contextual logging support: attach run_id, stage, file_name to log records."""

from __future__ import annotations

import contextvars
import uuid
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging: set per pass and per file.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_file_name: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "file_name", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    stage: str | None = None
    file_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        stage=_stage.get(),
        file_name=_file_name.get(),
    )


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def set_run_context(run_id: str | None = None) -> str:
    """Start a pass: set (or generate) its run_id and clear stage/file."""
    run_id = run_id or new_run_id()
    _run_id.set(run_id)
    _stage.set(None)
    _file_name.set(None)
    return run_id


def set_stage(stage: str | None) -> None:
    """Name the pipeline step currently running (scan, classify, place...)."""
    _stage.set(stage)


def set_file_context(file_name: str | None) -> None:
    """Name the file currently being handled."""
    _file_name.set(file_name)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _file_name.set(None)
