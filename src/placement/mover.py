# src/placement/mover.py — v1
"""Move classified files into the vault.

Notes are rewritten at their destination with classification metadata and
a related-notes section, then the source is removed. Any other file goes to
``<destination>/_Assets/`` and gets a companion note that embeds it. Every
write is an atomic whole-file replace; name clashes get ``_2``, ``_3``...
suffixes instead of overwriting.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from pydantic import BaseModel

from paravault.core.errors import LocalIOError
from paravault.core.models import Category, ClassificationResult, RelatedNote
from paravault.extraction.base_extractor import (
    BaseContentExtractor,
    binary_sentinel,
    unreadable_sentinel,
)
from paravault.storage.atomic import atomic_write_text, resolve_conflict
from paravault.vault import frontmatter
from paravault.vault.layout import ASSETS_DIRNAME, VaultLayout, index_name_for, is_note

logger = logging.getLogger(__name__)

RELATED_HEADING = "## Related Notes"
INDEX_HEADING = "## Notes"
SOURCE_IMPORT = "import"
SOURCE_ORIGINAL = "original"

_LINK_NAME_RE = re.compile(r"\[\[([^\]|#^]+)")


class PlacedFile(BaseModel):
    """Where a file ended up."""

    source: str
    note_path: str
    asset_path: str | None = None
    created_index: str | None = None


def placement_fields(result: ClassificationResult, source: str = SOURCE_IMPORT) -> dict:
    """Metadata written into a placed note; None values are left out on render."""
    return {
        frontmatter.CATEGORY_KEY: result.category.value,
        frontmatter.TAGS_KEY: list(result.tags),
        "created": frontmatter.today(),
        "status": "active",
        "summary": result.summary or None,
        "source": source,
        "project": result.project,
    }


def append_related(text: str, related: list[RelatedNote]) -> str:
    """Add a related-notes section listing notes *text* does not link to yet."""
    linked = {m.group(1).strip() for m in _LINK_NAME_RE.finditer(text)}
    fresh = [r for r in related if r.name not in linked]
    if not fresh:
        return text
    lines = [
        f"- [[{r.name}]]: {r.context}" if r.context else f"- [[{r.name}]]"
        for r in fresh
    ]
    if RELATED_HEADING in text:
        return text.rstrip("\n") + "\n" + "\n".join(lines) + "\n"
    return text.rstrip("\n") + f"\n\n{RELATED_HEADING}\n\n" + "\n".join(lines) + "\n"


class FileMover:
    """Place files at the destination a classification result points at."""

    def __init__(self, layout: VaultLayout, extractor: BaseContentExtractor) -> None:
        self._layout = layout
        self._extractor = extractor

    def place(self, path: Path, result: ClassificationResult) -> PlacedFile:
        """Move *path* to its destination.

        Raises:
            LocalIOError: If the source cannot be read or the target written.
        """
        path = Path(path)
        target_dir = self._layout.absolute(self._layout.destination_for(result))
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            created_index = self._ensure_index_note(target_dir, result)
            if is_note(path) and not self._extractor.is_binary(path):
                placed = self._place_note(path, target_dir, result)
            else:
                placed = self._place_asset(path, target_dir, result)
        except (OSError, UnicodeDecodeError) as e:
            raise LocalIOError(f"Could not place {path.name}: {e}") from e

        placed.created_index = created_index
        logger.info("Placed %s -> %s", path.name, placed.note_path)
        return placed

    # --- Notes ---

    def _place_note(self, path: Path, target_dir: Path, result: ClassificationResult) -> PlacedFile:
        text = path.read_text(encoding="utf-8")
        text = frontmatter.inject(text, placement_fields(result))
        text = append_related(text, result.related_notes)

        target = resolve_conflict(target_dir / path.name)
        atomic_write_text(target, text)
        path.unlink()
        return PlacedFile(source=path.name, note_path=self._layout.relative(target))

    # --- Binaries and other files ---

    def _place_asset(self, path: Path, target_dir: Path, result: ClassificationResult) -> PlacedFile:
        assets = target_dir / ASSETS_DIRNAME
        assets.mkdir(parents=True, exist_ok=True)
        asset = resolve_conflict(assets / path.name)
        # Extract before the move; the extractor needs the original path.
        body = self._extractor.extract(path)
        sentinels = (binary_sentinel(path), unreadable_sentinel(path))
        shutil.move(str(path), str(asset))

        note = resolve_conflict(target_dir / f"{asset.name}.md")
        fields = placement_fields(result)
        fields["file"] = asset.name
        content = (
            frontmatter.render(fields)
            + f"\n![[{asset.name}]]\n\n"
            + (body if body and body not in sentinels else f"File: {asset.name}")
            + "\n"
        )
        content = append_related(content, result.related_notes)
        atomic_write_text(note, content)
        return PlacedFile(
            source=path.name,
            note_path=self._layout.relative(note),
            asset_path=self._layout.relative(asset),
        )

    # --- Index notes ---

    def _ensure_index_note(self, target_dir: Path, result: ClassificationResult) -> str | None:
        """Create ``<folder>/<folder>.md`` for a new non-project subfolder."""
        if result.category is Category.PROJECT or not result.destination_folder.strip("/"):
            return None
        index = target_dir / index_name_for(target_dir.name)
        if index.exists():
            return None
        fields = frontmatter.minimal_fields(result.category)
        fields["source"] = SOURCE_ORIGINAL
        atomic_write_text(
            index, frontmatter.render(fields) + f"\n# {target_dir.name}\n\n{INDEX_HEADING}\n"
        )
        logger.info("Created index note %s", self._layout.relative(index))
        return self._layout.relative(index)
