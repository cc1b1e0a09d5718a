# src/pipeline/models.py — v2
"""Pipeline results: IngestResult, ReorganizeResult, EnrichResult, VaultCheckResult."""

from __future__ import annotations

from pydantic import BaseModel, Field

from paravault.audit.models import AuditReport, RepairResult
from paravault.batch.models import DedupResult
from paravault.core.models import ClassificationError, ClassificationResult, ConfirmationReason
from paravault.placement.mover import PlacedFile


class PendingFile(BaseModel):
    """A file waiting for a human to choose one of the alternatives."""

    path: str
    file_name: str
    reason: ConfirmationReason
    alternatives: list[ClassificationResult]


class RejectedFile(BaseModel):
    """A file that could not be classified or placed."""

    path: str
    file_name: str
    error: ClassificationError


class IngestResult(BaseModel):
    """Outcome of one inbox pass."""

    run_id: str = ""
    placed: list[PlacedFile] = Field(default_factory=list)
    pending: list[PendingFile] = Field(default_factory=list)
    rejected: list[RejectedFile] = Field(default_factory=list)
    # Inbox files skipped because they were already seen unchanged.
    skipped: list[str] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.placed) + len(self.pending) + len(self.rejected) + len(self.skipped)


class ReorganizeResult(BaseModel):
    """Outcome of reorganizing one subfolder."""

    folder: str
    dedup: DedupResult = Field(default_factory=DedupResult)
    updated: list[str] = Field(default_factory=list)
    misclassified: list[PendingFile] = Field(default_factory=list)
    rejected: list[RejectedFile] = Field(default_factory=list)
    cancelled: bool = False


class EnrichResult(BaseModel):
    """Notes whose empty metadata fields were filled by the classifier."""

    enriched: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    fields_filled: int = 0


class VaultCheckResult(BaseModel):
    """Outcome of audit, repair, enrichment and cache refresh over the whole vault."""

    run_id: str = ""
    report: AuditReport | None = None
    repair: RepairResult = Field(default_factory=RepairResult)
    # Vault-relative notes whose content changed since the last check.
    changed: list[str] = Field(default_factory=list)
    new: list[str] = Field(default_factory=list)
    enrichment: EnrichResult = Field(default_factory=EnrichResult)
    # Folders whose note index entries were rebuilt.
    indexed_folders: list[str] = Field(default_factory=list)
    cancelled: bool = False
