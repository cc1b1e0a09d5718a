# src/batch/dedup.py — v2
"""Duplicate detection within one pass.

Decision flow:
  1. Sort the candidate paths; the first path with a given body hash wins.
  2. Each later path with the same hash is a duplicate: its tags are merged
     into the survivor's metadata block, then it is moved to the trash.
  3. Files that cannot be hashed are kept as unique.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from paravault.batch.models import DedupResult, DuplicateEntry
from paravault.cache.fingerprint import body_hash
from paravault.core.cancellation import CancellationToken
from paravault.core.errors import LocalIOError
from paravault.storage.atomic import atomic_write_text
from paravault.storage.trash import BaseTrash
from paravault.vault import frontmatter
from paravault.vault.layout import is_note

logger = logging.getLogger(__name__)


class Deduplicator:
    """Remove duplicate bodies from a set of files, keeping the first."""

    def __init__(self, trash: BaseTrash, cancel: CancellationToken | None = None) -> None:
        self._trash = trash
        self._cancel = cancel

    async def deduplicate(self, paths: Iterable[Path]) -> DedupResult:
        ordered = sorted(Path(p) for p in paths)
        hashes = await asyncio.to_thread(_hash_all, ordered)

        result = DedupResult()
        seen: dict[str, Path] = {}
        for path in ordered:
            if self._cancel is not None:
                self._cancel.raise_if_cancelled()

            digest = hashes.get(path)
            if digest is None:
                result.unique.append(path)
                continue
            survivor = seen.get(digest)
            if survivor is None:
                seen[digest] = path
                result.unique.append(path)
                continue

            try:
                merged = await asyncio.to_thread(merge_tags, path, survivor)
                if merged is not None:
                    result.merged_tags[str(survivor)] = merged
                trashed_to = await asyncio.to_thread(self._trash.discard, path)
            except (OSError, UnicodeDecodeError, LocalIOError) as e:
                logger.warning("Could not remove duplicate %s: %s", path, e)
                result.failed.append(path)
                continue

            result.duplicates.append(
                DuplicateEntry(path=path, survivor=survivor, body_hash=digest, trashed_to=trashed_to)
            )
            logger.info("Duplicate %s of %s removed", path.name, survivor.name)

        logger.info(
            "Dedup complete: %d unique, %d duplicates, %d failed",
            len(result.unique), len(result.duplicates), len(result.failed),
        )
        return result


def merge_tags(source: Path, target: Path) -> list[str] | None:
    """Merge the tags of *source* into *target*'s metadata block.

    Returns:
        The merged, sorted tag list when *target* was rewritten, else None.
    """
    if not (is_note(source) and is_note(target)):
        return None
    source_text = source.read_text(encoding="utf-8")
    target_text = target.read_text(encoding="utf-8")

    target_tags = _tags(target_text)
    merged = sorted(set(target_tags) | set(_tags(source_text)))
    if merged == sorted(target_tags):
        return None
    atomic_write_text(target, frontmatter.set_field(target_text, frontmatter.TAGS_KEY, merged))
    return merged


def _tags(text: str) -> list[str]:
    block = frontmatter.parse(text)
    return frontmatter.tags_of(block.fields) if block else []


def _hash_all(paths: list[Path]) -> dict[Path, str]:
    hashes: dict[Path, str] = {}
    for path in paths:
        try:
            hashes[path] = body_hash(path)
        except OSError as e:
            logger.warning("Could not hash %s, keeping it: %s", path, e)
    return hashes
