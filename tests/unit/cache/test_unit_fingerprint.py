# tests/unit/cache/test_unit_fingerprint.py — v1
"""Tests for cache/fingerprint.py: content and body hashes."""

from __future__ import annotations

import hashlib

from paravault.cache import fingerprint
from paravault.cache.fingerprint import body_hash, body_text_hash, content_hash, hash_stream


class TestContentHash:
    def test_matches_sha256(self, tmp_path):
        path = tmp_path / "a.md"
        path.write_bytes(b"hello")
        assert content_hash(path) == hashlib.sha256(b"hello").hexdigest()

    def test_idempotent(self, tmp_path):
        path = tmp_path / "a.md"
        path.write_text("---\npara: area\n---\nbody", encoding="utf-8")
        assert content_hash(path) == content_hash(path)

    def test_metadata_change_changes_content_hash(self, tmp_path):
        a = tmp_path / "a.md"
        b = tmp_path / "b.md"
        a.write_text("---\npara: area\n---\nbody", encoding="utf-8")
        b.write_text("---\npara: archive\n---\nbody", encoding="utf-8")
        assert content_hash(a) != content_hash(b)

    def test_stream_chunking_does_not_change_digest(self, tmp_path):
        path = tmp_path / "blob.bin"
        data = bytes(range(256)) * 1000
        path.write_bytes(data)
        assert hash_stream(path, chunk_size=7) == hashlib.sha256(data).hexdigest()


class TestBodyHash:
    def test_ignores_metadata_and_outer_whitespace(self, tmp_path):
        a = tmp_path / "a.md"
        b = tmp_path / "b.md"
        a.write_text("---\npara: area\ntags: [x]\n---\n\nSame body\n", encoding="utf-8")
        b.write_text("Same body", encoding="utf-8")
        assert body_hash(a) == body_hash(b)

    def test_body_text_hash(self):
        assert body_text_hash("---\na: 1\n---\n text ") == body_text_hash("text")

    def test_binary_is_hashed_raw(self, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG\x00\x01")
        assert body_hash(path) == hashlib.sha256(b"\x89PNG\x00\x01").hexdigest()

    def test_undecodable_text_is_hashed_raw(self, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"caf\xe9")
        assert body_hash(path) == hashlib.sha256(b"caf\xe9").hexdigest()

    def test_large_text_is_streamed_raw(self, tmp_path, monkeypatch):
        monkeypatch.setattr(fingerprint, "LARGE_TEXT_BYTES", 10)
        path = tmp_path / "big.md"
        text = "---\na: 1\n---\n" + "x" * 50
        path.write_text(text, encoding="utf-8")
        assert body_hash(path) == hashlib.sha256(text.encode()).hexdigest()
