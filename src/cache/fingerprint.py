# src/cache/fingerprint.py — v3
"""Content fingerprints for change detection and deduplication.

Two hashes are built on the same SHA-256 primitive:

- content_hash: every byte of the file. Used to decide whether a note
  changed since the last pass, so metadata-only edits count.
- body_hash: for text notes, the body with the leading metadata block
  stripped and surrounding whitespace trimmed. Used for duplicate detection,
  so two copies differing only in metadata are the same document.

Binary files and large text files are streamed in fixed-size chunks so
memory use stays O(chunk size) whatever the file size.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from paravault.vault import frontmatter

# Bump when either hash changes meaning; older cache entries become misses.
ALGORITHM_VERSION = "sha256-v1"

CHUNK_SIZE = 1024 * 1024
LARGE_TEXT_BYTES = 8 * CHUNK_SIZE
TEXT_SUFFIXES: frozenset[str] = frozenset({".md", ".markdown", ".txt"})


def hash_bytes(data: bytes) -> str:
    """SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    """SHA-256 hex digest of UTF-8 encoded text."""
    return hash_bytes(text.encode("utf-8"))


def hash_stream(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """SHA-256 of a file read in *chunk_size* pieces."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def content_hash(path: Path) -> str:
    """Full-content hash of *path*, metadata block included."""
    return hash_stream(path)


def body_text_hash(text: str) -> str:
    """Dedup hash of note text: metadata block stripped, whitespace trimmed."""
    return hash_text(frontmatter.strip(text).strip())


def body_hash(path: Path) -> str:
    """Dedup hash of *path*.

    Small text notes are hashed on their body only; anything else (binary,
    undecodable, or larger than LARGE_TEXT_BYTES) is stream-hashed raw.
    """
    path = Path(path)
    if path.suffix.lower() not in TEXT_SUFFIXES or path.stat().st_size > LARGE_TEXT_BYTES:
        return hash_stream(path)
    raw = path.read_bytes()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return hash_bytes(raw)
    return body_text_hash(text)
