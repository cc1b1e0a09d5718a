# src/vault/note_index.py — v1
"""Machine-readable index of the vault's notes and folders.

Kept at ``<root>/<state_dirname>/note-index.json``. Incremental updates
rescan only the folders passed in and merge the result into the stored
index; a missing or unreadable index file starts from empty.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from paravault.core.models import Category
from paravault.storage.atomic import atomic_write_text
from paravault.vault import frontmatter
from paravault.vault.layout import VaultLayout, index_name_for, is_hidden, is_note

logger = logging.getLogger(__name__)

INDEX_FILENAME = "note-index.json"
INDEX_VERSION = 1
MAX_FOLDER_TAGS = 10
MAX_FOLDER_SUMMARIES = 3


class NoteIndexEntry(BaseModel):
    path: str
    folder: str
    para: str
    tags: list[str] = Field(default_factory=list)
    summary: str = ""
    project: str | None = None
    status: str | None = None


class FolderIndexEntry(BaseModel):
    path: str
    para: str
    summary: str
    tags: list[str] = Field(default_factory=list)


class NoteIndex(BaseModel):
    version: int = INDEX_VERSION
    updated: str = ""
    folders: dict[str, FolderIndexEntry] = Field(default_factory=dict)
    notes: dict[str, NoteIndexEntry] = Field(default_factory=dict)


class NoteIndexGenerator:
    """Rebuild index entries for changed folders. Blocking; run in a thread."""

    def __init__(self, layout: VaultLayout) -> None:
        self._layout = layout
        self._path = layout.state_path / INDEX_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> NoteIndex:
        if not self._path.exists():
            return NoteIndex()
        try:
            return NoteIndex.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Note index unreadable, rebuilding from empty: %s", e)
            return NoteIndex()

    def update_for_folders(self, folders: set[str]) -> NoteIndex:
        """Rescan the vault-relative *folders* and save the merged index."""
        index = self.load()
        for folder in sorted(folders):
            for key in [k for k, note in index.notes.items() if note.folder == folder]:
                del index.notes[key]
            folder_entry, notes = self._scan_folder(folder)
            if folder_entry is None:
                index.folders.pop(folder, None)
            else:
                index.folders[folder] = folder_entry
            for note in notes:
                index.notes[note.path] = note

        index.version = INDEX_VERSION
        index.updated = datetime.now(timezone.utc).isoformat()
        payload = index.model_dump(mode="json")
        atomic_write_text(self._path, json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))
        logger.info("Note index updated for %d folders (%d notes)", len(folders), len(index.notes))
        return index

    def _scan_folder(self, folder: str) -> tuple[FolderIndexEntry | None, list[NoteIndexEntry]]:
        directory = self._layout.absolute(folder)
        if not directory.is_dir():
            return None, []
        para = (Category.from_path(folder) or Category.ARCHIVE).value
        skip = index_name_for(folder)

        notes: list[NoteIndexEntry] = []
        tag_counts: Counter[str] = Counter()
        summaries: list[str] = []
        for path in sorted(directory.iterdir()):
            if not path.is_file() or not is_note(path) or is_hidden(path.name) or path.name == skip:
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Skipping %s in note index: %s", path.name, e)
                continue
            block = frontmatter.parse(text)
            fields = block.fields if block else {}
            tags = frontmatter.tags_of(fields)
            summary = fields.get("summary")
            summary = summary.strip() if isinstance(summary, str) else ""
            status = fields.get("status")
            project = fields.get("project")
            notes.append(
                NoteIndexEntry(
                    path=self._layout.relative(path),
                    folder=folder,
                    para=para,
                    tags=tags,
                    summary=summary,
                    project=str(project) if project else None,
                    status=str(status) if status else None,
                )
            )
            tag_counts.update(tags)
            if summary:
                summaries.append(summary)

        if not notes:
            return None, []
        folder_entry = FolderIndexEntry(
            path=folder,
            para=para,
            summary="; ".join(summaries[:MAX_FOLDER_SUMMARIES]) or f"{len(notes)} notes",
            tags=[tag for tag, _ in tag_counts.most_common(MAX_FOLDER_TAGS)],
        )
        return folder_entry, notes
