# src/placement/resolver.py — v1
"""Placement decision policy. Pure: no I/O, the caller supplies a snapshot.

Policy, first match wins:
  1. confidence below the confirmation threshold   -> NeedsConfirmation(low_confidence)
  2. project category without an existing project  -> NeedsConfirmation(unmatched_project)
  3. note name equals the folder's index note name -> NeedsConfirmation(index_name_conflict)
  4. a different file of that name already there   -> NeedsConfirmation(existing_name_conflict)
  5. otherwise                                     -> AutoPlace

A project folder is never created implicitly: only names that resolve to an
existing project can be auto-placed under 1_Project.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from paravault.core.models import (
    AutoPlace,
    Category,
    ClassificationInput,
    ClassificationResult,
    ConfirmationReason,
    DispatchOutcome,
    NeedsConfirmation,
    PlacementOutcome,
    Rejected,
)
from paravault.vault.layout import destination_of, index_name_for, planned_note_name

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_THRESHOLD = 0.5
ALTERNATIVE_CONFIDENCE = 0.5

_CATEGORY_PREFIX_RE = re.compile(r"^[1-4]_(?:Project|Area|Resource|Archive)/?", re.IGNORECASE)
_SEPARATOR_RUN_RE = re.compile(r"[\s\-]+")


def strip_category_prefix(folder: str) -> str:
    """``3_Resource/DevOps`` -> ``DevOps``."""
    return _CATEGORY_PREFIX_RE.sub("", folder.strip(), count=1).strip("/")


def normalize_project_name(name: str) -> str:
    return _SEPARATOR_RUN_RE.sub("_", name.strip().lower())


def match_project(name: str | None, project_names: list[str]) -> str | None:
    """Existing project a classifier-supplied name refers to, or None.

    Exact, then normalized (lowercase, whitespace/hyphen runs as ``_``),
    then substring containment in either direction.
    """
    if not name or not name.strip():
        return None
    if name in project_names:
        return name
    wanted = normalize_project_name(name)
    for candidate in project_names:
        if normalize_project_name(candidate) == wanted:
            return candidate
    for candidate in project_names:
        normalized = normalize_project_name(candidate)
        if normalized and (wanted in normalized or normalized in wanted):
            return candidate
    return None


@dataclass(frozen=True)
class PlacementContext:
    """Snapshot of the vault a decision is made against."""

    project_names: list[str] = field(default_factory=list)
    # Vault-relative folder -> names of the files it holds.
    folders: dict[str, frozenset[str]] = field(default_factory=dict)

    def holds(self, folder: str, name: str) -> bool:
        return name in self.folders.get(folder, frozenset())


class PlacementResolver:
    """Turn a classification result into a placement outcome."""

    def __init__(self, confirmation_threshold: float = DEFAULT_CONFIRMATION_THRESHOLD) -> None:
        self._threshold = confirmation_threshold

    def resolve_dispatch(self, outcome: DispatchOutcome, context: PlacementContext) -> PlacementOutcome:
        """Resolve a dispatcher outcome; failed classifications become Rejected."""
        if outcome.error is not None:
            return Rejected(error=outcome.error)
        assert outcome.result is not None
        return self.resolve(outcome.input, outcome.result, context)

    def resolve(
        self,
        item: ClassificationInput,
        result: ClassificationResult,
        context: PlacementContext,
    ) -> PlacementOutcome:
        result = result.model_copy(
            update={"destination_folder": strip_category_prefix(result.destination_folder)}
        )

        if result.confidence < self._threshold:
            return NeedsConfirmation(
                reason=ConfirmationReason.LOW_CONFIDENCE,
                alternatives=category_alternatives(result, context.project_names),
            )

        if result.category is Category.PROJECT:
            matched = match_project(result.project, context.project_names)
            if matched is None:
                return NeedsConfirmation(
                    reason=ConfirmationReason.UNMATCHED_PROJECT,
                    alternatives=unmatched_project_alternatives(result),
                )
            result = result.model_copy(update={"project": matched, "suggested_project": None})
        elif result.project:
            # Non-project notes may still reference a project; keep it only if real.
            matched = match_project(result.project, context.project_names)
            result = result.model_copy(
                update={
                    "project": matched,
                    "suggested_project": None if matched else result.project,
                }
            )

        destination = destination_of(result)
        note_name = planned_note_name(item.file_name)
        if note_name == index_name_for(destination):
            return NeedsConfirmation(
                reason=ConfirmationReason.INDEX_NAME_CONFLICT,
                alternatives=[result],
            )

        if context.holds(destination, item.file_name) or context.holds(destination, note_name):
            return NeedsConfirmation(
                reason=ConfirmationReason.EXISTING_NAME_CONFLICT,
                alternatives=[result],
            )

        return AutoPlace(result=result)


def category_alternatives(
    result: ClassificationResult, project_names: list[str]
) -> list[ClassificationResult]:
    """The result itself, then one option per other category at confidence 0.5."""
    options = [result]
    for category in Category:
        if category is result.category:
            continue
        if category is Category.PROJECT:
            project = match_project(result.project, project_names) or (
                project_names[0] if project_names else None
            )
        else:
            project = None
        options.append(
            result.model_copy(
                update={
                    "category": category,
                    "project": project,
                    "confidence": ALTERNATIVE_CONFIDENCE,
                }
            )
        )
    return options


def unmatched_project_alternatives(result: ClassificationResult) -> list[ClassificationResult]:
    """Options for a project result naming no existing project.

    Resource and area keep the destination; archive files the note under
    the suggested project name so nothing about it is lost.
    """
    suggested = (result.project or result.suggested_project or "").strip()
    base = {"project": None, "suggested_project": suggested or None}
    archive_folder = PurePosixPath(suggested).name if suggested else result.destination_folder
    return [
        result.model_copy(update={**base, "category": Category.RESOURCE, "confidence": 0.7}),
        result.model_copy(update={**base, "category": Category.AREA, "confidence": 0.6}),
        result.model_copy(
            update={
                **base,
                "category": Category.ARCHIVE,
                "confidence": 0.5,
                "destination_folder": archive_folder,
            }
        ),
    ]
