# src/cache/store.py — v1
"""Persistent fingerprint cache for a vault.

Stored as a single JSON object keyed by vault-relative path at
``<root>/<state_dirname>/content-hashes.json``. Lookup logic:

- no entry, or an entry written by another hash algorithm  -> NEW
- stored size differs from the file size                    -> MODIFIED (no hashing)
- stored hash differs from the current content hash         -> MODIFIED
- otherwise                                                 -> UNCHANGED
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from paravault.cache.fingerprint import content_hash
from paravault.cache.models import FingerprintEntry
from paravault.core.models import FileStatus
from paravault.storage.atomic import atomic_write_text

logger = logging.getLogger(__name__)

CACHE_FILENAME = "content-hashes.json"


class FingerprintCache:
    """Content-hash cache answering unchanged / modified / new per file.

    All mutation happens under one asyncio.Lock; hashing runs in a worker
    thread before the lock is taken.
    """

    def __init__(self, root: Path, state_dirname: str = ".paravault") -> None:
        self._root = Path(root).expanduser()
        self._path = self._root / state_dirname / CACHE_FILENAME
        self._entries: dict[str, FingerprintEntry] = {}
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, relative_path: str) -> FingerprintEntry | None:
        return self._entries.get(relative_path)

    # --- Persistence ---

    async def load(self) -> int:
        """Load the cache file, starting empty when it is missing or corrupt.

        Returns:
            Number of usable entries loaded.
        """
        entries = await asyncio.to_thread(self._read_entries)
        async with self._lock:
            self._entries = entries
        return len(entries)

    def _read_entries(self) -> dict[str, FingerprintEntry]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Fingerprint cache unreadable, starting empty: %s", e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Fingerprint cache has unexpected format, starting empty")
            return {}

        entries: dict[str, FingerprintEntry] = {}
        for key, raw in data.items():
            try:
                entry = FingerprintEntry.model_validate(raw)
            except ValidationError:
                logger.debug("Skipping invalid cache entry %s", key)
                continue
            if not entry.is_current:
                continue
            entries[key] = entry
        return entries

    async def save(self) -> None:
        """Write the whole map atomically."""
        async with self._lock:
            payload = {
                key: entry.model_dump(mode="json")
                for key, entry in sorted(self._entries.items())
            }
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        await asyncio.to_thread(atomic_write_text, self._path, text)
        logger.debug("Saved %d fingerprints to %s", len(payload), self._path)

    # --- Queries ---

    async def check_many(self, paths: Iterable[Path]) -> dict[Path, FileStatus]:
        """Change status of every path, in one hashing pass."""
        paths = [Path(p) for p in paths]
        async with self._lock:
            snapshot = dict(self._entries)

        statuses: dict[Path, FileStatus] = {}
        to_hash: list[tuple[Path, str]] = []
        for path in paths:
            rel = self._relative(path)
            entry = snapshot.get(rel) if rel is not None else None
            if entry is None:
                statuses[path] = FileStatus.NEW
                continue
            try:
                size = path.stat().st_size
            except OSError:
                statuses[path] = FileStatus.MODIFIED
                continue
            if size != entry.file_size_bytes:
                statuses[path] = FileStatus.MODIFIED
                continue
            to_hash.append((path, rel))

        hashes = await asyncio.to_thread(_hash_all, [p for p, _ in to_hash])

        async with self._lock:
            for path, rel in to_hash:
                current = self._entries.get(rel)
                digest = hashes.get(path)
                if current is None:
                    statuses[path] = FileStatus.NEW
                elif digest is None or digest != current.hash:
                    statuses[path] = FileStatus.MODIFIED
                else:
                    statuses[path] = FileStatus.UNCHANGED

        return {p: statuses[p] for p in paths}

    # --- Mutation ---

    async def update_many(self, paths: Iterable[Path]) -> int:
        """Record the current fingerprint of every path inside the vault.

        Returns:
            Number of entries written.
        """
        inside = [
            (Path(p), rel) for p in paths if (rel := self._relative(Path(p))) is not None
        ]
        fingerprints = await asyncio.to_thread(_fingerprint_all, [p for p, _ in inside])
        now = datetime.now(timezone.utc)

        async with self._lock:
            for path, rel in inside:
                fp = fingerprints.get(path)
                if fp is None:
                    continue
                digest, size = fp
                self._entries[rel] = FingerprintEntry(
                    relative_path=rel,
                    hash=digest,
                    file_size_bytes=size,
                    last_checked=now,
                )
        return sum(1 for p, _ in inside if p in fingerprints)

    async def forget(self, paths: Iterable[Path]) -> None:
        """Drop the entries of *paths* (moved or deleted files)."""
        rels = [rel for p in paths if (rel := self._relative(Path(p))) is not None]
        async with self._lock:
            for rel in rels:
                self._entries.pop(rel, None)

    def _relative(self, path: Path) -> str | None:
        """Vault-relative POSIX key, or None for paths outside the vault."""
        try:
            return path.resolve().relative_to(self._root.resolve()).as_posix()
        except (ValueError, OSError):
            return None


def _hash_all(paths: list[Path]) -> dict[Path, str]:
    hashes: dict[Path, str] = {}
    for path in paths:
        try:
            hashes[path] = content_hash(path)
        except OSError as e:
            logger.warning("Could not hash %s: %s", path, e)
    return hashes


def _fingerprint_all(paths: list[Path]) -> dict[Path, tuple[str, int]]:
    result: dict[Path, tuple[str, int]] = {}
    for path in paths:
        try:
            result[path] = (content_hash(path), path.stat().st_size)
        except OSError as e:
            logger.warning("Could not fingerprint %s: %s", path, e)
    return result
