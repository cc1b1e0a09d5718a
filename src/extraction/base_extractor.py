# src/extraction/base_extractor.py — v2
"""Abstract content extractor interface.

An extractor turns a file path into plain text for classification. It never
raises: unreadable or binary input produces a sentinel string instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

DEFAULT_MAX_LENGTH = 5000
DEFAULT_PREVIEW_LENGTH = 800


def binary_sentinel(path: Path) -> str:
    return f"[binary file: {Path(path).name}]"


def unreadable_sentinel(path: Path) -> str:
    return f"[unreadable: {Path(path).name}]"


class BaseContentExtractor(ABC):
    """Unified interface for content extractors."""

    @abstractmethod
    def extract(self, path: Path, max_length: int = DEFAULT_MAX_LENGTH) -> str:
        """Text of *path*, at most *max_length* characters, or a sentinel."""

    def preview(self, path: Path, content: str, max_length: int = DEFAULT_PREVIEW_LENGTH) -> str:
        """Short preview for batch classification, built from extracted *content*."""
        return content[:max_length]

    def is_binary(self, path: Path) -> bool:
        """Whether *path* should be placed as an asset with a companion note."""
        return False
