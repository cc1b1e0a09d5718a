# src/pipeline/vault_check.py — v2
"""Whole-vault consistency check.

Phases, in order:
  1. audit, then repair (the auditor is synchronous and runs in a worker
     thread); repaired notes are fingerprinted straight away so they are
     not reported as changed
  2. every note is checked against the fingerprint cache
  3. changed, new and repaired notes outside the archive get missing tags
     and summary filled in by the classifier, when an enricher is configured
  4. note index entries are rebuilt for every folder touched above
  5. fingerprints of changed, new and enriched notes are refreshed

Phase 3 writes notes, so it is skipped in report-only mode.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import PurePosixPath

from paravault.audit.auditor import VaultAuditor
from paravault.cache.store import FingerprintCache
from paravault.core.cancellation import CancellationToken
from paravault.core.errors import OperationCancelled
from paravault.core.models import FileStatus
from paravault.logging.context import set_run_context, set_stage
from paravault.pipeline.enrich import NoteEnricher
from paravault.pipeline.models import VaultCheckResult
from paravault.vault.layout import VaultLayout
from paravault.vault.note_index import NoteIndexGenerator

logger = logging.getLogger(__name__)


class VaultCheckPipeline:
    """Audit and repair the vault, then bring metadata, index and cache up to date."""

    def __init__(
        self,
        layout: VaultLayout,
        cache: FingerprintCache,
        repair: bool = True,
        enricher: NoteEnricher | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._layout = layout
        self._cache = cache
        self._repair = repair
        self._enricher = enricher
        self._cancel = cancel
        self._auditor = VaultAuditor(layout, cancel=cancel)
        self._indexer = NoteIndexGenerator(layout)

    async def run(self) -> VaultCheckResult:
        result = VaultCheckResult(run_id=set_run_context())
        try:
            await self._run(result)
        except OperationCancelled:
            logger.warning("Vault check cancelled")
            result.cancelled = True
        finally:
            set_stage(None)
            await self._cache.save()
        return result

    def _check_cancelled(self) -> None:
        if self._cancel is not None:
            self._cancel.raise_if_cancelled()

    async def _run(self, result: VaultCheckResult) -> None:
        await self._cache.load()

        set_stage("audit")
        report = await asyncio.to_thread(self._auditor.audit)
        result.report = report
        logger.info(
            "Audit: %d notes, %d broken links, %d without metadata, %d without category, %d untagged",
            report.total_scanned, len(report.broken_links), len(report.missing_frontmatter),
            len(report.missing_category), len(report.untagged_files),
        )

        if self._repair and report.total_issues:
            set_stage("repair")
            result.repair = await asyncio.to_thread(self._auditor.repair, report)
            await self._cache.update_many(
                self._layout.absolute(rel) for rel in result.repair.repaired_files
            )

        set_stage("fingerprint")
        self._check_cancelled()
        documents = await asyncio.to_thread(self._layout.iter_documents)
        statuses = await self._cache.check_many(documents)
        changed = [p for p, s in statuses.items() if s is FileStatus.MODIFIED]
        new = [p for p, s in statuses.items() if s is FileStatus.NEW]
        result.changed = [self._layout.relative(p) for p in changed]
        result.new = [self._layout.relative(p) for p in new]
        logger.info(
            "Fingerprints: %d changed, %d new, %d unchanged",
            len(changed), len(new), len(statuses) - len(changed) - len(new),
        )

        if self._repair and self._enricher is not None:
            set_stage("enrich")
            self._check_cancelled()
            repaired = [self._layout.absolute(rel) for rel in result.repair.repaired_files]
            result.enrichment = await self._enricher.enrich(changed + new + repaired)
            logger.info(
                "Enrichment: %d notes updated, %d fields filled, %d failed",
                len(result.enrichment.enriched), result.enrichment.fields_filled,
                len(result.enrichment.failed),
            )

        set_stage("index")
        self._check_cancelled()
        touched = (
            result.changed + result.new + result.repair.repaired_files + result.enrichment.enriched
        )
        folders = {str(PurePosixPath(rel).parent) for rel in touched}
        if folders:
            await asyncio.to_thread(self._indexer.update_for_folders, folders)
            result.indexed_folders = sorted(folders)

        enriched = [self._layout.absolute(rel) for rel in result.enrichment.enriched]
        await self._cache.update_many(changed + new + enriched)
