# src/classification/context.py — v1
"""Vault context handed to the classifier: projects, subfolders, related notes.

The context is built once per pass from the folder layout and each
project's index note, then shared read-only by every classification call.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from paravault.core.models import MAX_RELATED_NOTES, Category, ClassificationResult, RelatedNote
from paravault.vault import frontmatter
from paravault.vault.layout import VaultLayout, index_name_for, is_hidden, is_note

logger = logging.getLogger(__name__)

NO_PROJECTS = "No active projects."
NO_SUBFOLDERS = "No existing subfolders."

# Related-note links allowed per category; busier categories link more.
LINK_DENSITY: dict[Category, int] = {
    Category.PROJECT: 5,
    Category.AREA: 5,
    Category.RESOURCE: 3,
    Category.ARCHIVE: 1,
}
CROSS_CATEGORIES: dict[Category, tuple[Category, ...]] = {
    Category.PROJECT: (Category.RESOURCE, Category.AREA),
    Category.AREA: (Category.RESOURCE,),
    Category.RESOURCE: (Category.AREA,),
    Category.ARCHIVE: (),
}
CROSS_MIN_SHARED_TAGS = 2


class ProjectInfo(BaseModel):
    """An existing project folder and what its index note says about it."""

    name: str
    summary: str = ""
    tags: list[str] = Field(default_factory=list)


class ClassificationContext(BaseModel):
    """Read-only vault snapshot used to build classifier prompts."""

    projects: list[ProjectInfo] = Field(default_factory=list)
    subfolders: dict[Category, list[str]] = Field(default_factory=dict)

    @property
    def project_names(self) -> list[str]:
        return [p.name for p in self.projects]

    def project_section(self) -> str:
        if not self.projects:
            return NO_PROJECTS
        lines = []
        for p in self.projects:
            line = f"- {p.name}"
            if p.summary:
                line += f": {p.summary}"
            if p.tags:
                line += f" [{', '.join(p.tags)}]"
            lines.append(line)
        return "\n".join(lines)

    def subfolder_section(self) -> str:
        lines = [
            f"{category.folder_name} existing folders: {', '.join(names)}"
            for category, names in self.subfolders.items()
            if names
        ]
        return "\n".join(lines) if lines else NO_SUBFOLDERS


def build_context(layout: VaultLayout) -> ClassificationContext:
    """Collect projects (with their index note metadata) and subfolders."""
    projects: list[ProjectInfo] = []
    for name in layout.project_names():
        index = layout.category_path(Category.PROJECT) / name / index_name_for(name)
        fields = _read_fields(index)
        summary = fields.get("summary")
        projects.append(
            ProjectInfo(
                name=name,
                summary=summary if isinstance(summary, str) else "",
                tags=frontmatter.tags_of(fields),
            )
        )
    return ClassificationContext(projects=projects, subfolders=layout.existing_subfolders())


def find_related_notes(layout: VaultLayout, result: ClassificationResult) -> list[RelatedNote]:
    """Existing notes sharing tags with a classified file.

    Notes in the destination folder need one shared tag; notes in the
    neighbouring categories need two. Highest overlap first.
    """
    tags = {t.lower() for t in result.tags}
    if not tags:
        return []
    destination = layout.absolute(layout.destination_for(result))
    if destination == layout.category_path(result.category):
        # No subfolder: too broad to scan.
        return []

    candidates: list[tuple[int, str, str]] = []
    for path in _direct_notes(destination):
        shared = tags & {t.lower() for t in frontmatter.tags_of(_read_fields(path))}
        if shared:
            candidates.append((len(shared), path.stem, "shared tags: " + ", ".join(sorted(shared))))

    for category in CROSS_CATEGORIES[result.category]:
        base = layout.category_path(category)
        if not base.is_dir():
            continue
        for folder in sorted(p for p in base.iterdir() if p.is_dir() and not is_hidden(p.name)):
            for path in _direct_notes(folder):
                shared = tags & {t.lower() for t in frontmatter.tags_of(_read_fields(path))}
                if len(shared) >= CROSS_MIN_SHARED_TAGS:
                    context = f"found in {category.folder_name}, shared tags: " + ", ".join(sorted(shared))
                    candidates.append((len(shared), path.stem, context))

    limit = min(LINK_DENSITY[result.category], MAX_RELATED_NOTES)
    related: list[RelatedNote] = []
    seen: set[str] = set()
    for _, name, context in sorted(candidates, key=lambda c: (-c[0], c[1])):
        if name in seen:
            continue
        seen.add(name)
        related.append(RelatedNote(name=name, context=context))
        if len(related) >= limit:
            break
    return related


def _direct_notes(folder: Path) -> list[Path]:
    if not folder.is_dir():
        return []
    return sorted(
        p for p in folder.iterdir() if p.is_file() and is_note(p) and not is_hidden(p.name)
    )


def _read_fields(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return {}
    block = frontmatter.parse(text)
    return block.fields if block else {}
