# src/vault/frontmatter.py — v2
"""Leading YAML metadata block ("frontmatter") of vault notes.

Reads go through yaml.safe_load. Writes are textual edits on the raw block:
inserting or replacing one key never re-serializes the other lines, so
unrelated fields stay byte-for-byte identical.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import yaml

from paravault.core.models import Category

logger = logging.getLogger(__name__)

CATEGORY_KEY = "para"
TAGS_KEY = "tags"

_BLOCK_RE = re.compile(
    r"\A---[ \t]*\r?\n(?:(?P<yaml>.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)
_NEEDS_QUOTES_RE = re.compile(r"""^[\s\-?:,\[\]{}#&*!|>'"%@`]|[:#]\s|\s$|^$|[,\[\]\r\n]""")


@dataclass(frozen=True)
class FrontmatterBlock:
    """Location and parsed content of a metadata block."""

    start: int
    end: int
    yaml_start: int
    yaml_end: int
    newline: str
    fields: dict[str, Any] = field(default_factory=dict)
    # False when the block text is not a YAML mapping; fields is then empty.
    valid: bool = True


def parse(text: str) -> FrontmatterBlock | None:
    """Locate and parse the leading metadata block, or None if there is none."""
    match = _BLOCK_RE.match(text)
    if match is None:
        return None
    yaml_text = match.group("yaml") or ""
    if match.group("yaml") is None:
        # Empty block: the insertion point is right after the opening line.
        yaml_start = yaml_end = text.index("\n") + 1
    else:
        yaml_start, yaml_end = match.span("yaml")
    newline = "\r\n" if "\r\n" in match.group(0) else "\n"
    fields, valid = _load_fields(yaml_text)
    return FrontmatterBlock(
        start=0,
        end=match.end(),
        yaml_start=yaml_start,
        yaml_end=yaml_end,
        newline=newline,
        fields=fields,
        valid=valid,
    )


def _load_fields(yaml_text: str) -> tuple[dict[str, Any], bool]:
    if not yaml_text.strip():
        return {}, True
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        logger.debug("Unparseable metadata block: %s", e)
        return {}, False
    if data is None:
        # Comments only.
        return {}, True
    if not isinstance(data, dict):
        return {}, False
    return data, True


def split(text: str) -> tuple[FrontmatterBlock | None, str]:
    """Return (block, body). Body is the whole text when there is no block."""
    block = parse(text)
    if block is None:
        return None, text
    return block, text[block.end :]


def strip(text: str) -> str:
    """Body text with the metadata block removed."""
    return split(text)[1]


def category_of(fields: dict[str, Any]) -> Category | None:
    value = fields.get(CATEGORY_KEY)
    if not isinstance(value, str):
        return None
    try:
        return Category(value.strip().lower())
    except ValueError:
        return None


def tags_of(fields: dict[str, Any]) -> list[str]:
    value = fields.get(TAGS_KEY)
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = [str(v) for v in value if v is not None]
    else:
        items = [str(value)]
    return [t.strip() for t in items if t.strip()]


def today() -> str:
    return date.today().isoformat()


# === RENDERING ===


def format_value(value: Any) -> str:
    """Render one value as a single-line YAML scalar or flow list."""
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value)
    if _NEEDS_QUOTES_RE.search(text):
        return json.dumps(text, ensure_ascii=False)
    return text


def render(fields: dict[str, Any], newline: str = "\n") -> str:
    """Render a complete block, delimiters included. None values are skipped."""
    lines = ["---"]
    for key, value in fields.items():
        if value is None:
            continue
        lines.append(f"{key}: {format_value(value)}")
    lines.append("---")
    return newline.join(lines) + newline


def minimal_fields(category: Category, status: str = "active") -> dict[str, Any]:
    """Smallest block a note is allowed to have."""
    return {
        CATEGORY_KEY: category.value,
        TAGS_KEY: [],
        "created": today(),
        "status": status,
    }


# === EDITING ===


def insert_first(text: str, key: str, value: Any) -> str:
    """Insert ``key: value`` as the first line of an existing block.

    Raises:
        ValueError: If *text* has no metadata block.
    """
    block = parse(text)
    if block is None:
        raise ValueError("text has no metadata block")
    open_end = text.index("\n") + 1
    line = f"{key}: {format_value(value)}{block.newline}"
    return text[:open_end] + line + text[open_end:]


def set_field(text: str, key: str, value: Any) -> str:
    """Replace the value of *key*, appending it when absent.

    A block is created when *text* has none. Only the lines belonging to
    *key* (its own line plus indented continuation lines) are rewritten.
    """
    block = parse(text)
    if block is None:
        return render({key: value}) + text

    nl = block.newline
    yaml_text = text[block.yaml_start : block.yaml_end]
    lines = yaml_text.split(nl) if yaml_text else []
    new_line = f"{key}: {format_value(value)}"

    key_re = re.compile(rf"^{re.escape(key)}\s*:")
    for i, line in enumerate(lines):
        if not key_re.match(line):
            continue
        j = i + 1
        while j < len(lines) and lines[j].startswith((" ", "\t", "-")):
            j += 1
        lines[i:j] = [new_line]
        return text[: block.yaml_start] + nl.join(lines) + text[block.yaml_end :]

    return _append_lines(text, block, [new_line])


def inject(text: str, fields: dict[str, Any]) -> str:
    """Add the *fields* the note does not have yet; existing values win."""
    block = parse(text)
    if block is None:
        return render(fields) + text
    missing = [
        f"{key}: {format_value(value)}"
        for key, value in fields.items()
        if value is not None and key not in block.fields
    ]
    if not missing:
        return text
    return _append_lines(text, block, missing)


def _append_lines(text: str, block: FrontmatterBlock, lines: list[str]) -> str:
    nl = block.newline
    if block.yaml_start == block.yaml_end:
        addition = nl.join(lines) + nl
        return text[: block.yaml_start] + addition + text[block.yaml_start :]
    addition = nl + nl.join(lines)
    return text[: block.yaml_end] + addition + text[block.yaml_end :]
