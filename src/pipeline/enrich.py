# src/pipeline/enrich.py — v1
"""Fill in missing note metadata from a classifier pass.

Only notes outside the archive whose metadata block lacks tags or a
summary are sent to the classifier. Values already present are never
overwritten; notes without a block, or with one that is not valid YAML,
are left to the auditor.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from paravault.classification.context import build_context
from paravault.classification.dispatcher import ClassificationDispatcher, DispatchStage
from paravault.core.cancellation import CancellationToken
from paravault.core.models import Category, ClassificationResult
from paravault.extraction.base_extractor import (
    DEFAULT_MAX_LENGTH,
    DEFAULT_PREVIEW_LENGTH,
    BaseContentExtractor,
)
from paravault.pipeline.ingest import build_inputs
from paravault.pipeline.models import EnrichResult
from paravault.storage.atomic import atomic_write_text
from paravault.vault import frontmatter
from paravault.vault.layout import VaultLayout

logger = logging.getLogger(__name__)

SUMMARY_KEY = "summary"


def missing_fields(text: str) -> set[str]:
    """Keys enrichment could fill for *text*; empty when it should be skipped."""
    block = frontmatter.parse(text)
    if block is None or not block.valid:
        return set()
    missing: set[str] = set()
    if not frontmatter.tags_of(block.fields):
        missing.add(frontmatter.TAGS_KEY)
    summary = block.fields.get(SUMMARY_KEY)
    if not (isinstance(summary, str) and summary.strip()):
        missing.add(SUMMARY_KEY)
    return missing


def apply_enrichment(text: str, result: ClassificationResult) -> tuple[str, int]:
    """Write the classifier's tags and summary into the empty fields of *text*.

    Returns the new text and the number of fields filled.
    """
    missing = missing_fields(text)
    filled = 0
    if frontmatter.TAGS_KEY in missing and result.tags:
        text = frontmatter.set_field(text, frontmatter.TAGS_KEY, list(result.tags))
        filled += 1
    if SUMMARY_KEY in missing and result.summary.strip():
        text = frontmatter.set_field(text, SUMMARY_KEY, result.summary.strip())
        filled += 1
    return text, filled


class NoteEnricher:
    """Classify notes with incomplete metadata and fill the gaps in place."""

    def __init__(
        self,
        layout: VaultLayout,
        dispatcher: ClassificationDispatcher,
        stage: DispatchStage,
        extractor: BaseContentExtractor,
        max_length: int = DEFAULT_MAX_LENGTH,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._layout = layout
        self._dispatcher = dispatcher
        self._stage = stage
        self._extractor = extractor
        self._max_length = max_length
        self._preview_length = preview_length
        self._cancel = cancel

    async def enrich(self, paths: list[Path]) -> EnrichResult:
        result = EnrichResult()
        candidates = await asyncio.to_thread(self._candidates, paths)
        if not candidates:
            return result
        logger.info("Enriching metadata of %d notes", len(candidates))

        inputs = await asyncio.to_thread(
            build_inputs,
            candidates,
            self._layout,
            self._extractor,
            self._max_length,
            self._preview_length,
            self._cancel,
        )
        context = await asyncio.to_thread(build_context, self._layout)
        outcomes = await self._dispatcher.dispatch(inputs, context, self._stage)

        for outcome, path in zip(outcomes, candidates):
            rel = self._layout.relative(path)
            if outcome.result is None:
                kind = outcome.error.kind.value if outcome.error else "unknown"
                logger.warning("Enrichment failed for %s (%s)", rel, kind)
                result.failed.append(rel)
                continue
            try:
                filled = await asyncio.to_thread(self._write, path, outcome.result)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not write enriched metadata to %s: %s", rel, e)
                result.failed.append(rel)
                continue
            if filled:
                result.enriched.append(rel)
                result.fields_filled += filled
        return result

    def _candidates(self, paths: list[Path]) -> list[Path]:
        selected: list[Path] = []
        for path in sorted(set(paths)):
            if Category.from_path(self._layout.relative(path)) is Category.ARCHIVE:
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Not enriching unreadable note %s: %s", path.name, e)
                continue
            if missing_fields(text):
                selected.append(path)
        return selected

    def _write(self, path: Path, result: ClassificationResult) -> int:
        # Re-read: the note may have been edited while the classifier ran.
        text, filled = apply_enrichment(path.read_text(encoding="utf-8"), result)
        if filled:
            atomic_write_text(path, text)
        return filled
