# src/pipeline/ingest.py — v1
"""Inbox ingestion pipeline.

Steps of one pass:
  1. scan:     top-level inbox files, fingerprint cache filters unchanged ones
  2. extract:  text and preview per file (blocking, off the event loop)
  3. classify: two-stage dispatch through the rate limiter
  4. resolve:  AutoPlace / NeedsConfirmation / Rejected per file
  5. place:    AutoPlace files are moved, with related-note links
  6. record:   fingerprints of placed notes and pending inbox files, then save

Pending inbox files are fingerprinted so the next pass skips them until
they change or a human places them with place_confirmed().
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

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
    AutoPlace,
    ClassificationError,
    ClassificationInput,
    ClassificationResult,
    FileStatus,
    NeedsConfirmation,
)
from paravault.extraction.base_extractor import (
    DEFAULT_MAX_LENGTH,
    DEFAULT_PREVIEW_LENGTH,
    BaseContentExtractor,
)
from paravault.logging.context import set_file_context, set_run_context, set_stage
from paravault.pipeline.models import IngestResult, PendingFile, RejectedFile
from paravault.placement.mover import FileMover, PlacedFile
from paravault.placement.resolver import PlacementContext, PlacementResolver
from paravault.vault.layout import VaultLayout

logger = logging.getLogger(__name__)


def build_inputs(
    paths: list[Path],
    layout: VaultLayout,
    extractor: BaseContentExtractor,
    max_length: int = DEFAULT_MAX_LENGTH,
    preview_length: int = DEFAULT_PREVIEW_LENGTH,
    cancel: CancellationToken | None = None,
) -> list[ClassificationInput]:
    """Extract text and preview for every path, in order. Blocking."""
    inputs: list[ClassificationInput] = []
    for path in paths:
        if cancel is not None:
            cancel.raise_if_cancelled()
        text = extractor.extract(path, max_length)
        inputs.append(
            ClassificationInput(
                id=layout.relative(path),
                path=str(path),
                file_name=path.name,
                extracted_text=text,
                preview_text=extractor.preview(path, text, preview_length),
            )
        )
    return inputs


class InboxProcessor:
    """Classify and place the files waiting in the inbox.

    Args:
        layout: Vault folder layout.
        cache: Fingerprint cache of the vault.
        dispatcher: Rate-limited classification runner.
        fast: Batch stage run on every file.
        precise: Optional single-file stage for uncertain results.
        resolver: Placement policy.
        mover: Writes placed files into the vault.
        extractor: Text extractor for classification input.
    """

    def __init__(
        self,
        layout: VaultLayout,
        cache: FingerprintCache,
        dispatcher: ClassificationDispatcher,
        fast: DispatchStage,
        resolver: PlacementResolver,
        mover: FileMover,
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
        self._resolver = resolver
        self._mover = mover
        self._extractor = extractor
        self._max_length = max_length
        self._preview_length = preview_length
        self._cancel = cancel

    async def run(self) -> IngestResult:
        """Process every new or changed inbox file once."""
        result = IngestResult(run_id=set_run_context())
        try:
            await self._run(result)
        except OperationCancelled:
            logger.warning("Ingest cancelled")
            result.cancelled = True
        finally:
            set_stage(None)
            set_file_context(None)
            await self._cache.save()

        logger.info(
            "Ingest done: %d placed, %d pending, %d rejected, %d skipped",
            len(result.placed), len(result.pending), len(result.rejected), len(result.skipped),
        )
        return result

    async def _run(self, result: IngestResult) -> None:
        set_stage("scan")
        files = self._layout.inbox_files()
        if not files:
            logger.info("Inbox is empty")
            return
        await self._cache.load()
        statuses = await self._cache.check_many(files)
        todo = [p for p in files if statuses[p] is not FileStatus.UNCHANGED]
        result.skipped = [p.name for p in files if statuses[p] is FileStatus.UNCHANGED]
        logger.info("Inbox: %d files, %d to process", len(files), len(todo))
        if not todo:
            return

        set_stage("extract")
        inputs = await asyncio.to_thread(
            build_inputs,
            todo,
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

        set_stage("place")
        placement = PlacementContext(
            project_names=context.project_names, folders=self._layout.folder_snapshot()
        )
        pending_paths: list[Path] = []
        for outcome in outcomes:
            self._check_cancelled()
            path = Path(outcome.input.path)
            set_file_context(path.name)
            decision = self._resolver.resolve_dispatch(outcome, placement)

            if isinstance(decision, AutoPlace):
                try:
                    result.placed.append(await self._place(path, decision.result))
                except LocalIOError as e:
                    logger.error("Placement failed for %s: %s", path.name, e)
                    result.rejected.append(
                        _rejected(path, self._layout, ClassificationError.of(ErrorKind.IO))
                    )
            elif isinstance(decision, NeedsConfirmation):
                logger.info("%s needs confirmation (%s)", path.name, decision.reason.value)
                result.pending.append(
                    PendingFile(
                        path=self._layout.relative(path),
                        file_name=path.name,
                        reason=decision.reason,
                        alternatives=decision.alternatives,
                    )
                )
                pending_paths.append(path)
            else:
                result.rejected.append(_rejected(path, self._layout, decision.error))
        set_file_context(None)

        set_stage("record")
        await self._cache.update_many(pending_paths)

    async def place_confirmed(self, path: Path, result: ClassificationResult) -> PlacedFile:
        """Place an inbox file with the alternative a human picked.

        Raises:
            LocalIOError: If the file cannot be moved.
        """
        path = Path(path)
        set_file_context(path.name)
        try:
            placed = await self._place(path, result)
        finally:
            set_file_context(None)
        await self._cache.save()
        return placed

    async def _place(self, path: Path, result: ClassificationResult) -> PlacedFile:
        related = await asyncio.to_thread(find_related_notes, self._layout, result)
        result = result.model_copy(update={"related_notes": related})
        placed = await asyncio.to_thread(self._mover.place, path, result)
        await self._cache.forget([path])
        await self._cache.update_many([self._layout.absolute(placed.note_path)])
        return placed

    def _check_cancelled(self) -> None:
        if self._cancel is not None:
            self._cancel.raise_if_cancelled()


def _rejected(path: Path, layout: VaultLayout, error: ClassificationError) -> RejectedFile:
    return RejectedFile(path=layout.relative(path), file_name=path.name, error=error)
