# src/logging/logger.py — v2
"""Formatters and setup for the ``paravault`` logger tree.

Every module logs through ``logging.getLogger(__name__)``; setup_logging()
attaches handlers once, at the ``paravault`` root. The pass context (run id,
stage, file) is read from context variables at format time, so records
emitted from worker threads inside ``asyncio.to_thread`` carry it too.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from paravault.logging.context import get_context

ROOT_LOGGER_NAME = "paravault"

# Third-party loggers that are chatty at INFO.
NOISY_LIBRARIES = ("httpx", "httpcore", "anthropic", "google")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, pass context under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Single-line terminal format: time, level, logger, [stage] (file), message."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        parts = [stamp, f"[{record.levelname:8s}]", record.name]
        if ctx.stage:
            parts.append(f"[{ctx.stage}]")
        if ctx.file_name:
            parts.append(f"({ctx.file_name})")
        parts.append(f": {record.getMessage()}")
        text = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            text += "\n" + self.formatException(record.exc_info)
        return text


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 5,
) -> None:
    """Configure the paravault root logger.

    Console output goes to stderr so stdout stays free for command output.
    Calling it again replaces the previous handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
        log_file: Path to log file (None = console only).
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        from paravault.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(log_file, rotation=rotation, retention=retention)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Library debug output only when paravault itself is at DEBUG.
    library_level = logging.DEBUG if root_logger.level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)
