# tests/unit/pipeline/test_unit_enrich.py — v1
"""Tests for pipeline/enrich.py: which fields are missing and how they are filled."""

from __future__ import annotations

from paravault.core.models import Category, ClassificationResult
from paravault.pipeline.enrich import apply_enrichment, missing_fields


def _result(tags=("ops",), summary="Runbook for deploys"):
    return ClassificationResult(category=Category.AREA, tags=list(tags), summary=summary, confidence=0.9)


class TestMissingFields:
    def test_complete_note(self):
        assert missing_fields("---\ntags: [a]\nsummary: done\n---\nbody") == set()

    def test_empty_values_count_as_missing(self):
        assert missing_fields("---\ntags: []\nsummary: ''\n---\nbody") == {"tags", "summary"}

    def test_no_block_or_unparseable_block_is_skipped(self):
        assert missing_fields("plain body") == set()
        assert missing_fields("---\ntags: [a, b\n---\nbody") == set()


class TestApplyEnrichment:
    def test_fills_only_empty_fields(self):
        text = "---\npara: area\ntags: [keep]\nowner: me\n---\nbody\n"
        new_text, filled = apply_enrichment(text, _result())
        assert filled == 1
        assert new_text == "---\npara: area\ntags: [keep]\nowner: me\nsummary: Runbook for deploys\n---\nbody\n"

    def test_replaces_empty_tag_list_in_place(self):
        text = "---\npara: area\ntags: []\nsummary: s\n---\nbody\n"
        new_text, filled = apply_enrichment(text, _result())
        assert filled == 1
        assert new_text == "---\npara: area\ntags: [ops]\nsummary: s\n---\nbody\n"

    def test_nothing_to_fill_from_empty_result(self):
        text = "---\ntags: []\n---\nbody\n"
        assert apply_enrichment(text, _result(tags=(), summary=" ")) == (text, 0)
