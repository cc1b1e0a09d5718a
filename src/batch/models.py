# src/batch/models.py — v2
"""Deduplication models: DuplicateEntry, DedupResult."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class DuplicateEntry(BaseModel):
    """A file removed because an earlier file has the same body."""

    path: Path
    survivor: Path
    body_hash: str
    trashed_to: Path | None = None


class DedupResult(BaseModel):
    """Outcome of one deduplication pass over a set of files."""

    unique: list[Path] = Field(default_factory=list)
    duplicates: list[DuplicateEntry] = Field(default_factory=list)
    # Survivor path -> tag list after merging, only for survivors that changed.
    merged_tags: dict[str, list[str]] = Field(default_factory=dict)
    failed: list[Path] = Field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.duplicates)
