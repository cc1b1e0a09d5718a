# tests/unit/vault/test_unit_frontmatter.py — v2
"""Tests for vault/frontmatter.py: parsing and byte-preserving edits."""

from __future__ import annotations

import pytest

from paravault.core.models import Category
from paravault.vault import frontmatter


NOTE = "---\npara: area\ntags: [ops, k8s]\nowner: me\n---\n# Title\n\nBody text.\n"


class TestParse:
    def test_no_block(self):
        assert frontmatter.parse("# Just a heading\n") is None

    def test_fields_and_body(self):
        block, body = frontmatter.split(NOTE)
        assert block is not None
        assert block.fields["owner"] == "me"
        assert body == "# Title\n\nBody text.\n"

    def test_empty_block(self):
        block = frontmatter.parse("---\n---\nbody")
        assert block is not None
        assert block.fields == {}
        assert frontmatter.strip("---\n---\nbody") == "body"

    def test_crlf_newlines(self):
        block = frontmatter.parse("---\r\npara: project\r\n---\r\nbody")
        assert block is not None
        assert block.newline == "\r\n"
        assert frontmatter.category_of(block.fields) is Category.PROJECT

    def test_invalid_yaml_gives_empty_fields(self):
        block = frontmatter.parse("---\n: : [unclosed\n---\nbody")
        assert block is not None
        assert block.fields == {}
        assert block.valid is False

    def test_validity(self):
        assert frontmatter.parse(NOTE).valid is True
        assert frontmatter.parse("---\n---\nbody").valid is True
        assert frontmatter.parse("---\n# only a comment\n---\nbody").valid is True
        assert frontmatter.parse("---\n- a\n- b\n---\nbody").valid is False


class TestAccessors:
    def test_category_of(self):
        assert frontmatter.category_of({"para": " Resource "}) is Category.RESOURCE
        assert frontmatter.category_of({"para": "inbox"}) is None
        assert frontmatter.category_of({"para": 3}) is None
        assert frontmatter.category_of({}) is None

    @pytest.mark.parametrize(
        "value, expected",
        [
            (["a", " b ", None], ["a", "b"]),
            ("a, b,,c", ["a", "b", "c"]),
            (None, []),
            (42, ["42"]),
        ],
    )
    def test_tags_of(self, value, expected):
        assert frontmatter.tags_of({"tags": value}) == expected


class TestRender:
    def test_format_value_quotes_when_needed(self):
        assert frontmatter.format_value("plain") == "plain"
        assert frontmatter.format_value("a: b") == '"a: b"'
        assert frontmatter.format_value(["x", "y z"]) == "[x, y z]"
        assert frontmatter.format_value(True) == "true"

    def test_render_skips_none(self):
        text = frontmatter.render({"para": "area", "project": None, "tags": []})
        assert text == "---\npara: area\ntags: []\n---\n"

    def test_minimal_fields(self):
        fields = frontmatter.minimal_fields(Category.ARCHIVE)
        assert fields["para"] == "archive"
        assert fields["tags"] == []
        assert fields["status"] == "active"


class TestEdits:
    def test_insert_first_keeps_other_lines(self):
        text = "---\ntags: [a]\n---\nbody"
        result = frontmatter.insert_first(text, "para", "resource")
        assert result == "---\npara: resource\ntags: [a]\n---\nbody"

    def test_insert_first_without_block_raises(self):
        with pytest.raises(ValueError):
            frontmatter.insert_first("body", "para", "area")

    def test_set_field_replaces_only_that_key(self):
        result = frontmatter.set_field(NOTE, "tags", ["ops"])
        assert result == NOTE.replace("tags: [ops, k8s]", "tags: [ops]")

    def test_set_field_replaces_block_list(self):
        text = "---\ntags:\n  - a\n  - b\nowner: me\n---\nbody"
        result = frontmatter.set_field(text, "tags", ["c"])
        assert result == "---\ntags: [c]\nowner: me\n---\nbody"

    def test_set_field_appends_missing_key(self):
        result = frontmatter.set_field("---\npara: area\n---\nbody", "status", "done")
        assert result == "---\npara: area\nstatus: done\n---\nbody"

    def test_set_field_creates_block(self):
        assert frontmatter.set_field("body", "para", "area") == "---\npara: area\n---\nbody"

    def test_inject_existing_values_win(self):
        result = frontmatter.inject(NOTE, {"para": "archive", "status": "active"})
        block = frontmatter.parse(result)
        assert block.fields["para"] == "area"
        assert block.fields["status"] == "active"
        assert result.endswith("# Title\n\nBody text.\n")

    def test_inject_into_empty_block(self):
        result = frontmatter.inject("---\n---\nbody", {"tags": ["x"]})
        assert result == "---\ntags: [x]\n---\nbody"

    def test_inject_nothing_missing_is_identity(self):
        assert frontmatter.inject(NOTE, {"owner": "you"}) == NOTE
