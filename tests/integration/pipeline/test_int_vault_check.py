# tests/integration/pipeline/test_int_vault_check.py — v2
"""Integration tests for the whole-vault check.

Covers: pipeline/vault_check.py with audit/auditor.py, pipeline/enrich.py,
vault/note_index.py, cache/store.py and a real vault on disk.
"""

from __future__ import annotations

import json

import pytest

from paravault.cache.store import FingerprintCache
from paravault.classification.dispatcher import ClassificationDispatcher, DispatchStage
from paravault.core.cancellation import CancellationToken
from paravault.core.models import Category, ClassificationResult
from paravault.extraction.text_extractor import PlainTextExtractor
from paravault.pipeline.enrich import NoteEnricher
from paravault.pipeline.vault_check import VaultCheckPipeline
from paravault.ratelimit.limiter import ProviderPolicy, RateLimiter
from paravault.vault import frontmatter


@pytest.fixture
def messy_vault(layout, write_file):
    root = layout.root
    write_file(root / "1_Project/Project_A/Project_A.md", "---\npara: project\ntags: [a]\n---\n# Project_A\n")
    write_file(
        root / "1_Project/Project_A/Meeting.md",
        "---\npara: project\ntags: [a]\n---\nSee [[Projct_A]] and [[Totally_Unrelated_Xyz]].\n",
    )
    write_file(root / "2_Area/Health/Sleep.md", "Sleep log without metadata\n")
    write_file(root / "3_Resource/Tools/Git.md", "---\ntags: [git]\nowner: me\n---\nbranches\n")
    write_file(root / "4_Archive/Old.md", "---\npara: archive\ntags: [old]\n---\nold\n")
    return layout


def _pipeline(layout, **kwargs):
    return VaultCheckPipeline(layout, FingerprintCache(layout.root), **kwargs)


class TestVaultCheck:
    @pytest.mark.asyncio
    async def test_audit_repair_and_fingerprints(self, messy_vault):
        root = messy_vault.root
        result = await _pipeline(messy_vault).run()

        report = result.report
        assert report.total_scanned == 5
        assert [link.link_target for link in report.broken_links] == ["Projct_A", "Totally_Unrelated_Xyz"]
        assert report.missing_frontmatter == ["2_Area/Health/Sleep.md"]
        assert sorted(report.missing_category) == ["2_Area/Health/Sleep.md", "3_Resource/Tools/Git.md"]

        assert (root / "1_Project/Project_A/Meeting.md").read_text(encoding="utf-8").endswith(
            "See [[Project_A]] and Totally_Unrelated_Xyz.\n"
        )
        sleep = frontmatter.parse((root / "2_Area/Health/Sleep.md").read_text(encoding="utf-8"))
        assert sleep.fields["para"] == "area"
        assert (root / "3_Resource/Tools/Git.md").read_text(encoding="utf-8") == (
            "---\npara: resource\ntags: [git]\nowner: me\n---\nbranches\n"
        )
        assert result.repair.links_fixed == 1
        assert result.repair.links_stripped == 1
        assert result.repair.frontmatter_injected == 1
        assert result.repair.category_fixed == 1

        # Repaired notes are fingerprinted as part of repair, the rest are new.
        assert sorted(result.new) == ["1_Project/Project_A/Project_A.md", "4_Archive/Old.md"]
        assert result.changed == []
        assert (root / ".paravault").is_dir()

    @pytest.mark.asyncio
    async def test_second_run_is_clean(self, messy_vault, write_file):
        await _pipeline(messy_vault).run()
        second = await _pipeline(messy_vault).run()
        assert second.report.total_issues == 0
        assert second.repair.total == 0
        assert second.new == []
        assert second.changed == []

        write_file(messy_vault.root / "4_Archive/Old.md", "---\npara: archive\ntags: [old]\n---\nedited\n")
        third = await _pipeline(messy_vault).run()
        assert third.changed == ["4_Archive/Old.md"]

    @pytest.mark.asyncio
    async def test_report_only(self, messy_vault):
        before = (messy_vault.root / "2_Area/Health/Sleep.md").read_text(encoding="utf-8")
        result = await _pipeline(messy_vault, repair=False).run()
        assert result.report.total_issues == 5
        assert result.repair.total == 0
        assert (messy_vault.root / "2_Area/Health/Sleep.md").read_text(encoding="utf-8") == before
        assert len(result.new) == 5

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, messy_vault):
        cancel = CancellationToken()
        cancel.cancel()
        result = await _pipeline(messy_vault, cancel=cancel).run()
        assert result.cancelled is True
        assert result.report is None


def _enricher(layout, classifier):
    limiter = RateLimiter({"anthropic": ProviderPolicy(min_interval=0.001, slot_count=1)})
    return NoteEnricher(
        layout,
        ClassificationDispatcher(limiter),
        DispatchStage("fast", classifier),
        PlainTextExtractor(),
    )


def _auto(item):
    return ClassificationResult(
        category=Category.RESOURCE, tags=["auto"], summary="Auto summary", confidence=0.9
    )


class TestEnrichment:
    @pytest.mark.asyncio
    async def test_fills_missing_tags_and_summary(self, messy_vault, classifier_factory):
        root = messy_vault.root
        classifier = classifier_factory(_auto)
        result = await _pipeline(messy_vault, enricher=_enricher(messy_vault, classifier)).run()

        assert result.enrichment.enriched == [
            "1_Project/Project_A/Meeting.md",
            "1_Project/Project_A/Project_A.md",
            "2_Area/Health/Sleep.md",
            "3_Resource/Tools/Git.md",
        ]
        assert result.enrichment.fields_filled == 5
        assert result.enrichment.failed == []

        sleep = frontmatter.parse((root / "2_Area/Health/Sleep.md").read_text(encoding="utf-8"))
        assert sleep.fields["tags"] == ["auto"]
        assert sleep.fields["summary"] == "Auto summary"
        assert sleep.fields["para"] == "area"
        git = frontmatter.parse((root / "3_Resource/Tools/Git.md").read_text(encoding="utf-8"))
        assert git.fields["tags"] == ["git"]
        assert git.fields["summary"] == "Auto summary"
        # Archive notes are never sent to the classifier.
        assert (root / "4_Archive/Old.md").read_text(encoding="utf-8") == (
            "---\npara: archive\ntags: [old]\n---\nold\n"
        )
        assert all("Old.md" not in call for call in classifier.calls)

    @pytest.mark.asyncio
    async def test_enriched_notes_are_fingerprinted(self, messy_vault, classifier_factory):
        classifier = classifier_factory(_auto)
        await _pipeline(messy_vault, enricher=_enricher(messy_vault, classifier)).run()
        calls = len(classifier.calls)

        second = await _pipeline(messy_vault, enricher=_enricher(messy_vault, classifier)).run()
        assert second.changed == []
        assert second.new == []
        assert second.enrichment.enriched == []
        assert len(classifier.calls) == calls

    @pytest.mark.asyncio
    async def test_classifier_failure_leaves_notes_alone(self, messy_vault, classifier_factory):
        from paravault.core.errors import AuthError

        before = (messy_vault.root / "3_Resource/Tools/Git.md").read_text(encoding="utf-8")
        classifier = classifier_factory(_auto, failures=[AuthError("no key")])
        result = await _pipeline(messy_vault, enricher=_enricher(messy_vault, classifier)).run()

        assert len(result.enrichment.failed) == 4
        assert result.enrichment.enriched == []
        after = (messy_vault.root / "3_Resource/Tools/Git.md").read_text(encoding="utf-8")
        assert after == "---\npara: resource\ntags: [git]\nowner: me\n---\nbranches\n"
        assert after != before

    @pytest.mark.asyncio
    async def test_report_only_never_enriches(self, messy_vault, classifier_factory):
        classifier = classifier_factory(_auto)
        result = await _pipeline(
            messy_vault, repair=False, enricher=_enricher(messy_vault, classifier)
        ).run()
        assert classifier.calls == []
        assert result.enrichment.enriched == []


class TestNoteIndex:
    @pytest.mark.asyncio
    async def test_touched_folders_are_indexed(self, messy_vault):
        result = await _pipeline(messy_vault).run()
        assert result.indexed_folders == [
            "1_Project/Project_A",
            "2_Area/Health",
            "3_Resource/Tools",
            "4_Archive",
        ]

        index = json.loads((messy_vault.root / ".paravault/note-index.json").read_text(encoding="utf-8"))
        assert set(index["folders"]) == set(result.indexed_folders)
        # The folder's own index note is not listed as a note.
        assert "1_Project/Project_A/Project_A.md" not in index["notes"]
        assert index["notes"]["1_Project/Project_A/Meeting.md"]["para"] == "project"
        assert index["notes"]["3_Resource/Tools/Git.md"]["tags"] == ["git"]

        second = await _pipeline(messy_vault).run()
        assert second.indexed_folders == []
