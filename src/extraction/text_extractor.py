# src/extraction/text_extractor.py — v1
"""Plain-text extractor, the default content extractor.

Markdown gets a structure-aware extract that fits a character budget:
metadata block, intro, heading outline and tail. Other text files get head
plus tail without reading the whole file. Anything that looks binary
(known extension, or a NUL byte in the first block) yields the binary
sentinel; format-specific binary extraction is out of scope here.
"""

from __future__ import annotations

import logging
from pathlib import Path

from paravault.extraction.base_extractor import (
    DEFAULT_MAX_LENGTH,
    DEFAULT_PREVIEW_LENGTH,
    BaseContentExtractor,
    binary_sentinel,
    unreadable_sentinel,
)
from paravault.vault import frontmatter

logger = logging.getLogger(__name__)

BINARY_EXTENSIONS: frozenset[str] = frozenset({
    ".pdf", ".docx", ".pptx", ".xlsx", ".doc", ".ppt", ".xls",
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".heic", ".tiff", ".bmp", ".svg",
    ".zip", ".gz", ".tar", ".7z", ".mp3", ".mp4", ".mov", ".wav",
})
MARKDOWN_EXTENSIONS: frozenset[str] = frozenset({".md", ".markdown"})

SNIFF_BYTES = 8192
MARKDOWN_READ_BYTES = 1024 * 1024
TAIL_MARKER = "\n[end of document]\n"
OMITTED_MARKER = "\n\n[... omitted ...]\n\n"
OUTLINE_MARKER = "\n[outline]\n"


class PlainTextExtractor(BaseContentExtractor):
    """Extractor for markdown and plain text files."""

    def is_binary(self, path: Path) -> bool:
        path = Path(path)
        if path.suffix.lower() in BINARY_EXTENSIONS:
            return True
        try:
            with open(path, "rb") as f:
                return b"\x00" in f.read(SNIFF_BYTES)
        except OSError:
            return False

    def extract(self, path: Path, max_length: int = DEFAULT_MAX_LENGTH) -> str:
        path = Path(path)
        if self.is_binary(path):
            return binary_sentinel(path)
        try:
            if path.suffix.lower() in MARKDOWN_EXTENSIONS:
                return self._extract_markdown(path, max_length)
            return self._extract_head_tail(path, max_length)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", path.name, e)
            return unreadable_sentinel(path)

    def preview(self, path: Path, content: str, max_length: int = DEFAULT_PREVIEW_LENGTH) -> str:
        """Metadata hints, heading outline and first paragraph of a markdown note."""
        if Path(path).suffix.lower() not in MARKDOWN_EXTENSIONS:
            return content[:max_length]

        block, body = frontmatter.split(content)
        fields = block.fields if block else {}
        parts: list[str] = []
        for key in (frontmatter.CATEGORY_KEY, frontmatter.TAGS_KEY, "summary"):
            value = fields.get(key)
            if value not in (None, "", []):
                parts.append(f"{key}: {frontmatter.format_value(value)}")

        headings = _headings(body)
        if headings:
            parts.append("outline: " + " > ".join(headings[:10]))
        paragraph = _first_paragraph(body, max_length // 2)
        if paragraph:
            parts.append(paragraph)
        return "\n".join(parts)[:max_length]

    # --- Markdown ---

    def _extract_markdown(self, path: Path, max_length: int) -> str:
        with open(path, "rb") as f:
            data = f.read(MARKDOWN_READ_BYTES)
            has_more = bool(f.read(1))
        text = data.decode("utf-8", errors="ignore" if has_more else "strict")
        if len(text) <= max_length:
            return text

        block = frontmatter.parse(text)
        head = text[: block.end] if block else ""
        body = text[block.end :] if block else text

        head_budget = min(len(head), max_length // 5)
        intro_budget = max_length * 3 // 10
        outline_budget = max_length * 3 // 10
        tail_budget = max_length - head_budget - intro_budget - outline_budget

        parts: list[str] = []
        if head:
            parts.append(head[:head_budget])
        intro = body[:intro_budget]
        parts.append(intro)

        headings = _headings(body)
        intro_headings = sum(1 for line in intro.splitlines() if line.lstrip().startswith("#"))
        if len(headings) > intro_headings:
            parts.append((OUTLINE_MARKER + "\n".join(headings))[:outline_budget])

        if len(body) > intro_budget + 200:
            tail = body[-tail_budget:]
            if tail[:50] not in intro:
                parts.append(TAIL_MARKER + tail)

        return "\n".join(parts)[:max_length]

    # --- Other text ---

    def _extract_head_tail(self, path: Path, max_length: int) -> str:
        head_bytes = max_length * 4
        with open(path, "rb") as f:
            head_data = f.read(head_bytes)
            size = f.seek(0, 2)
            head_text = head_data.decode("utf-8", errors="ignore")
            if not head_text:
                return unreadable_sentinel(path) if size else ""
            if len(head_text) <= max_length:
                return head_text

            tail_budget = max_length // 4
            head_budget = max_length - tail_budget - len(OMITTED_MARKER)
            result = head_text[:head_budget]
            if size > head_bytes:
                f.seek(max(0, size - tail_budget * 4))
                tail_text = f.read(tail_budget * 4).decode("utf-8", errors="ignore")
                if len(tail_text) > 50:
                    result += OMITTED_MARKER + tail_text[-tail_budget:]
        return result[:max_length]


def _headings(body: str) -> list[str]:
    return [line.strip() for line in body.splitlines() if line.strip().startswith("#")]


def _first_paragraph(body: str, max_length: int) -> str:
    lines: list[str] = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            if lines:
                break
            continue
        lines.append(stripped)
        if sum(len(s) + 1 for s in lines) >= max_length:
            break
    return " ".join(lines)[:max_length]
