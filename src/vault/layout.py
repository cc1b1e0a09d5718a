# src/vault/layout.py — v1
"""Folder layout of a vault: inbox, category folders, subfolders, notes.

All vault-relative paths handed to other modules are POSIX strings so they
compare equal across platforms and serialize cleanly into the cache file.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from paravault.core.models import Category, ClassificationResult

logger = logging.getLogger(__name__)

INBOX_DIRNAME = "_Inbox"
ASSETS_DIRNAME = "_Assets"
NOTE_SUFFIXES: frozenset[str] = frozenset({".md", ".markdown"})


def is_hidden(name: str) -> bool:
    """Dot files and underscore-prefixed system entries are never content."""
    return name.startswith(".") or name.startswith("_")


def is_note(path: str | Path) -> bool:
    return Path(path).suffix.lower() in NOTE_SUFFIXES


def planned_note_name(file_name: str) -> str:
    """Name of the note a placed file ends up as.

    Notes keep their name; any other file gets a companion ``<name>.md``.
    """
    return file_name if is_note(file_name) else f"{file_name}.md"


def index_name_for(folder: str) -> str:
    """Reserved index note name of a vault-relative folder."""
    return f"{PurePosixPath(folder).name}.md"


def destination_of(result: ClassificationResult) -> str:
    """Vault-relative folder a classification result points at."""
    if result.category is Category.PROJECT and result.project:
        return f"{Category.PROJECT.folder_name}/{result.project}"
    base = result.category.folder_name
    folder = result.destination_folder.strip("/")
    return f"{base}/{folder}" if folder else base


class VaultLayout:
    """Resolve and enumerate the well-known folders of a vault."""

    def __init__(self, root: Path, state_dirname: str = ".paravault") -> None:
        self._root = Path(root).expanduser()
        self._state_dirname = state_dirname

    @property
    def root(self) -> Path:
        return self._root

    @property
    def inbox_path(self) -> Path:
        return self._root / INBOX_DIRNAME

    @property
    def state_path(self) -> Path:
        return self._root / self._state_dirname

    def category_path(self, category: Category) -> Path:
        return self._root / category.folder_name

    def initialize(self) -> None:
        """Create the inbox and the four category folders if missing."""
        self.inbox_path.mkdir(parents=True, exist_ok=True)
        for category in Category:
            self.category_path(category).mkdir(parents=True, exist_ok=True)

    # --- Paths ---

    def relative(self, path: Path | str) -> str:
        """Vault-relative POSIX path, or the input unchanged when outside the vault."""
        p = Path(path)
        try:
            return p.resolve().relative_to(self._root.resolve()).as_posix()
        except ValueError:
            return p.as_posix()

    def contains(self, path: Path | str) -> bool:
        """Whether *path* resolves inside the vault root (symlinks followed)."""
        try:
            Path(path).resolve().relative_to(self._root.resolve())
        except ValueError:
            return False
        return True

    def absolute(self, relative: str) -> Path:
        return self._root / relative

    def destination_for(self, result: ClassificationResult) -> str:
        return destination_of(result)

    # --- Enumeration ---

    def inbox_files(self) -> list[Path]:
        """Top-level, non-hidden files waiting in the inbox."""
        if not self.inbox_path.is_dir():
            return []
        return sorted(
            p for p in self.inbox_path.iterdir() if p.is_file() and not is_hidden(p.name)
        )

    def iter_documents(self) -> list[Path]:
        """Every note under the four category folders, hidden entries skipped."""
        results: list[Path] = []
        for category in Category:
            base = self.category_path(category)
            if base.is_dir():
                results.extend(self._walk_notes(base))
        return results

    def _walk_notes(self, directory: Path) -> list[Path]:
        found: list[Path] = []
        for entry in sorted(directory.iterdir()):
            if is_hidden(entry.name):
                continue
            if entry.is_dir():
                found.extend(self._walk_notes(entry))
            elif entry.is_file() and is_note(entry):
                found.append(entry)
        return found

    def iter_attachments(self) -> list[Path]:
        """Files kept in ``_Assets`` folders anywhere under the category folders."""
        results: list[Path] = []
        for category in Category:
            base = self.category_path(category)
            if base.is_dir():
                results.extend(
                    p for p in sorted(base.rglob(f"{ASSETS_DIRNAME}/*")) if p.is_file()
                )
        return results

    def project_names(self) -> list[str]:
        """Existing project folders; these are the only valid project targets."""
        base = self.category_path(Category.PROJECT)
        if not base.is_dir():
            return []
        return sorted(p.name for p in base.iterdir() if p.is_dir() and not is_hidden(p.name))

    def existing_subfolders(self) -> dict[Category, list[str]]:
        """First-level subfolders of the non-project categories."""
        result: dict[Category, list[str]] = {}
        for category in (Category.AREA, Category.RESOURCE, Category.ARCHIVE):
            base = self.category_path(category)
            if not base.is_dir():
                result[category] = []
                continue
            result[category] = sorted(
                p.name for p in base.iterdir() if p.is_dir() and not is_hidden(p.name)
            )
        return result

    def folder_snapshot(self) -> dict[str, frozenset[str]]:
        """Map of every category folder and subfolder to the file names it holds."""
        snapshot: dict[str, frozenset[str]] = {}
        for category in Category:
            base = self.category_path(category)
            if base.is_dir():
                self._snapshot_dir(base, snapshot)
        return snapshot

    def _snapshot_dir(self, directory: Path, snapshot: dict[str, frozenset[str]]) -> None:
        names: set[str] = set()
        for entry in directory.iterdir():
            if entry.is_dir():
                if not entry.name.startswith("."):
                    self._snapshot_dir(entry, snapshot)
            else:
                names.add(entry.name)
        snapshot[self.relative(directory)] = frozenset(names)
