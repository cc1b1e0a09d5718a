# src/pipeline/reorganize.py — v1
"""Reorganize one existing subfolder.

Dedup -> classify -> compare. Notes the classifier puts back in the same
folder get their metadata rewritten (``created`` and unrelated keys are
kept); notes it would put elsewhere are reported as misclassified with a set
of alternatives and are never moved without confirmation. Files that are not
notes are deduplicated but otherwise left alone.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from paravault.batch.dedup import Deduplicator
from paravault.cache.store import FingerprintCache
from paravault.classification.context import build_context, find_related_notes
from paravault.classification.dispatcher import (
    DEFAULT_ESCALATION_THRESHOLD,
    ClassificationDispatcher,
    DispatchStage,
)
from paravault.core.cancellation import CancellationToken
from paravault.core.errors import ErrorKind, LocalIOError, OperationCancelled
from paravault.core.models import (
    Category,
    ClassificationError,
    ClassificationResult,
    ConfirmationReason,
)
from paravault.extraction.base_extractor import (
    DEFAULT_MAX_LENGTH,
    DEFAULT_PREVIEW_LENGTH,
    BaseContentExtractor,
)
from paravault.logging.context import set_file_context, set_run_context, set_stage
from paravault.pipeline.ingest import build_inputs
from paravault.pipeline.models import PendingFile, RejectedFile, ReorganizeResult
from paravault.placement.mover import SOURCE_IMPORT, append_related
from paravault.placement.resolver import category_alternatives, match_project, strip_category_prefix
from paravault.storage.atomic import atomic_write_text
from paravault.vault import frontmatter
from paravault.vault.layout import VaultLayout, index_name_for, is_hidden, is_note

logger = logging.getLogger(__name__)


def rewrite_metadata(text: str, result: ClassificationResult) -> str:
    """Overwrite the classification keys of a note; other keys stay as they are."""
    text = frontmatter.inject(text, {"created": frontmatter.today()})
    updates = {
        frontmatter.CATEGORY_KEY: result.category.value,
        frontmatter.TAGS_KEY: list(result.tags),
        "status": "active",
        "summary": result.summary or None,
        "source": SOURCE_IMPORT,
        "project": result.project,
    }
    for key, value in updates.items():
        if value is not None:
            text = frontmatter.set_field(text, key, value)
    return text


class FolderReorganizer:
    """Check the notes of one subfolder against a fresh classification."""

    def __init__(
        self,
        layout: VaultLayout,
        cache: FingerprintCache,
        dispatcher: ClassificationDispatcher,
        fast: DispatchStage,
        deduplicator: Deduplicator,
        extractor: BaseContentExtractor,
        precise: DispatchStage | None = None,
        escalation_threshold: float = DEFAULT_ESCALATION_THRESHOLD,
        max_length: int = DEFAULT_MAX_LENGTH,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._layout = layout
        self._cache = cache
        self._dispatcher = dispatcher
        self._fast = fast
        self._precise = precise
        self._threshold = escalation_threshold
        self._dedup = deduplicator
        self._extractor = extractor
        self._max_length = max_length
        self._preview_length = preview_length
        self._cancel = cancel

    async def run(self, category: Category, subfolder: str) -> ReorganizeResult:
        """Reorganize ``<category folder>/<subfolder>``.

        Raises:
            LocalIOError: If the folder does not exist.
        """
        subfolder = strip_category_prefix(subfolder)
        folder = self._layout.category_path(category) / subfolder
        if not folder.is_dir():
            raise LocalIOError(f"No such folder: {self._layout.relative(folder)}")

        set_run_context()
        result = ReorganizeResult(folder=self._layout.relative(folder))
        try:
            await self._cache.load()
            await self._run(category, subfolder, folder, result)
        except OperationCancelled:
            logger.warning("Reorganize of %s cancelled", result.folder)
            result.cancelled = True
        finally:
            set_stage(None)
            set_file_context(None)
            await self._cache.save()

        logger.info(
            "Reorganized %s: %d updated, %d misclassified, %d duplicates removed",
            result.folder, len(result.updated), len(result.misclassified),
            result.dedup.removed_count,
        )
        return result

    async def _run(
        self, category: Category, subfolder: str, folder: Path, result: ReorganizeResult
    ) -> None:
        set_stage("dedup")
        files = _scan_folder(folder)
        result.dedup = await self._dedup.deduplicate(files)
        await self._cache.forget(d.path for d in result.dedup.duplicates)

        notes = [p for p in result.dedup.unique if is_note(p)]
        if not notes:
            return

        set_stage("extract")
        inputs = await asyncio.to_thread(
            build_inputs,
            notes,
            self._layout,
            self._extractor,
            self._max_length,
            self._preview_length,
            self._cancel,
        )

        set_stage("classify")
        context = await asyncio.to_thread(build_context, self._layout)
        outcomes = await self._dispatcher.classify(
            inputs, context, self._fast, self._precise, self._threshold
        )

        set_stage("compare")
        updated_paths: list[Path] = []
        for outcome in outcomes:
            if self._cancel is not None:
                self._cancel.raise_if_cancelled()
            path = Path(outcome.input.path)
            set_file_context(path.name)
            rel = self._layout.relative(path)

            if outcome.error is not None:
                result.rejected.append(RejectedFile(path=rel, file_name=path.name, error=outcome.error))
                continue
            assert outcome.result is not None
            classified = _normalized(outcome.result, context.project_names)

            if not _belongs_here(classified, category, subfolder):
                result.misclassified.append(
                    PendingFile(
                        path=rel,
                        file_name=path.name,
                        reason=ConfirmationReason.MISCLASSIFIED,
                        alternatives=category_alternatives(classified, context.project_names),
                    )
                )
                continue

            try:
                await asyncio.to_thread(self._rewrite, path, classified)
            except (OSError, UnicodeDecodeError) as e:
                logger.error("Could not update %s: %s", rel, e)
                result.rejected.append(
                    RejectedFile(
                        path=rel, file_name=path.name, error=ClassificationError.of(ErrorKind.IO)
                    )
                )
                continue
            result.updated.append(rel)
            updated_paths.append(path)
        set_file_context(None)

        await self._cache.update_many(updated_paths)

    def _rewrite(self, path: Path, result: ClassificationResult) -> None:
        related = find_related_notes(self._layout, result)
        # A note never links to itself.
        related = [r for r in related if r.name != path.stem]
        text = path.read_text(encoding="utf-8")
        text = append_related(rewrite_metadata(text, result), related)
        atomic_write_text(path, text)


def _scan_folder(folder: Path) -> list[Path]:
    """Direct, non-hidden files of *folder* except its index note."""
    index = index_name_for(folder.name)
    return sorted(
        p
        for p in folder.iterdir()
        if p.is_file() and not is_hidden(p.name) and p.name != index
    )


def _normalized(result: ClassificationResult, project_names: list[str]) -> ClassificationResult:
    update: dict = {"destination_folder": strip_category_prefix(result.destination_folder)}
    if result.project:
        matched = match_project(result.project, project_names)
        update["project"] = matched
        update["suggested_project"] = None if matched else result.project
    return result.model_copy(update=update)


def _belongs_here(result: ClassificationResult, category: Category, subfolder: str) -> bool:
    if result.category is not category:
        return False
    if category is Category.PROJECT:
        return result.project == subfolder
    return result.destination_folder == subfolder
