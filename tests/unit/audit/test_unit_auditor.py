# tests/unit/audit/test_unit_auditor.py — v3
"""Tests for audit/auditor.py: full-vault audit and repair."""

from __future__ import annotations

import pytest

from paravault.audit.auditor import LinkIndex, VaultAuditor, split_link
from paravault.core.cancellation import CancellationToken
from paravault.core.errors import OperationCancelled
from paravault.vault import frontmatter


@pytest.fixture
def auditor(layout):
    return VaultAuditor(layout)


def _read(layout, rel):
    return (layout.root / rel).read_text(encoding="utf-8")


class TestLinkIndex:
    def test_resolution_rules(self):
        index = LinkIndex(["3_Resource/DevOps/Kubernetes.md", "2_Area/Ops.md"], ["3_Resource/x/_Assets/a.pdf"])
        assert index.resolves("Kubernetes")
        assert index.resolves("Kubernetes.md")
        assert index.resolves("Kubernetes#Install")
        assert index.resolves("DevOps/Kubernetes")
        assert index.resolves("3_Resource/DevOps/Kubernetes")
        assert index.resolves("Other/Kubernetes")
        assert index.resolves("#Heading")
        assert index.resolves("a.pdf")
        assert not index.resolves("Helm")

    def test_split_link(self):
        assert split_link("target|Shown") == ("target", "Shown")
        assert split_link(" target ") == ("target", None)


class TestAudit:
    def test_reports_each_issue(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/Good.md", "---\npara: resource\ntags: [a]\n---\nSee [[Good]].\n")
        write_file(layout.root / "3_Resource/Bare.md", "No metadata. [[Goood]] and [[Goood]] again.\n")
        write_file(layout.root / "2_Area/NoCat.md", "---\ntags: [x]\n---\nbody\n")
        write_file(layout.root / "2_Area/NoTags.md", "---\npara: area\n---\nbody\n")

        report = auditor.audit()

        assert report.total_scanned == 4
        assert report.missing_frontmatter == ["3_Resource/Bare.md"]
        assert sorted(report.missing_category) == ["2_Area/NoCat.md", "3_Resource/Bare.md"]
        assert sorted(report.untagged_files) == ["2_Area/NoTags.md", "3_Resource/Bare.md"]
        assert len(report.broken_links) == 1
        link = report.broken_links[0]
        assert (link.file_path, link.link_target, link.suggestion) == ("3_Resource/Bare.md", "Goood", "Good")

    def test_links_in_metadata_ignored(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/A.md", '---\npara: resource\ntags: [a]\nup: "[[Missing]]"\n---\nbody\n')
        assert auditor.audit().broken_links == []

    def test_asset_embeds_resolve(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/P/_Assets/scan.pdf", "x")
        write_file(layout.root / "3_Resource/P/scan.pdf.md", "---\npara: resource\ntags: [a]\n---\n![[scan.pdf]]\n")
        assert auditor.audit().broken_links == []

    def test_cancelled(self, layout, write_file):
        write_file(layout.root / "3_Resource/A.md", "x")
        cancel = CancellationToken()
        cancel.cancel()
        with pytest.raises(OperationCancelled):
            VaultAuditor(layout, cancel=cancel).audit()


class TestRepair:
    def test_fix_and_strip_links_body_only(self, layout, auditor, write_file):
        write_file(layout.root / "1_Project/Project_A/Project_A.md", "---\npara: project\ntags: [p]\n---\nindex\n")
        write_file(
            layout.root / "1_Project/Project_A/Notes.md",
            "---\npara: project\ntags: [p]\n---\n"
            "Link [[Projct_A|the project]] and [[Projct_A]] and [[Totally_Unrelated_Xyz|gone]]"
            " and [[Totally_Unrelated_Xyz]].\n",
        )

        result = auditor.repair(auditor.audit())

        text = _read(layout, "1_Project/Project_A/Notes.md")
        assert text == (
            "---\npara: project\ntags: [p]\n---\n"
            "Link [[Project_A|the project]] and [[Project_A]] and gone and Totally_Unrelated_Xyz.\n"
        )
        assert result.links_fixed == 2
        assert result.links_stripped == 2
        assert result.repaired_files == ["1_Project/Project_A/Notes.md"]

    def test_inject_block_uses_folder_category(self, layout, auditor, write_file):
        write_file(layout.root / "4_Archive/Old.md", "old body\n")
        result = auditor.repair(auditor.audit())
        text = _read(layout, "4_Archive/Old.md")
        block, body = frontmatter.split(text)
        assert block.fields["para"] == "archive"
        assert body == "old body\n"
        assert result.frontmatter_injected == 1
        assert result.category_fixed == 0

    def test_category_inserted_without_touching_other_lines(self, layout, auditor, write_file):
        original = "---\ntags: [x]\nowner: me\n---\nbody\n"
        write_file(layout.root / "2_Area/Ops/Run.md", original)
        result = auditor.repair(auditor.audit())
        assert _read(layout, "2_Area/Ops/Run.md") == "---\npara: area\ntags: [x]\nowner: me\n---\nbody\n"
        assert result.category_fixed == 1

    def test_invalid_category_replaced(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/R.md", "---\npara: misc\ntags: [x]\n---\nbody\n")
        auditor.repair(auditor.audit())
        assert _read(layout, "3_Resource/R.md") == "---\npara: resource\ntags: [x]\n---\nbody\n"

    def test_repair_is_idempotent(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/Good.md", "---\npara: resource\ntags: [a]\n---\nbody\n")
        write_file(layout.root / "3_Resource/Bad.md", "[[Goodd]] [[Nope_Nothing_Here_At_All]]\n")
        auditor.repair(auditor.audit())
        second = auditor.audit()
        assert second.broken_links == []
        assert second.missing_frontmatter == []
        assert second.missing_category == []
        assert auditor.repair(second).total == 0

    def test_vanished_file_is_recorded_as_failed(self, layout, auditor, write_file):
        path = write_file(layout.root / "3_Resource/Temp.md", "no block\n")
        report = auditor.audit()
        path.unlink()
        result = auditor.repair(report)
        assert result.failed == ["3_Resource/Temp.md"]
        assert result.repaired_files == []

    def test_unparseable_block_is_reported_not_rewritten(self, layout, auditor, write_file):
        original = "---\ntags: [a, b\n---\nbody\n"
        write_file(layout.root / "3_Resource/Broken.md", original)

        report = auditor.audit()
        assert report.unparseable_frontmatter == ["3_Resource/Broken.md"]
        assert report.missing_category == []
        assert report.missing_frontmatter == []

        for _ in range(2):
            assert auditor.repair(auditor.audit()).total == 0
        assert _read(layout, "3_Resource/Broken.md") == original

    def test_anchor_kept_when_link_is_fixed(self, layout, auditor, write_file):
        write_file(layout.root / "1_Project/Project_A/Project_A.md", "---\npara: project\ntags: [p]\n---\nindex\n")
        write_file(
            layout.root / "1_Project/Project_A/Log.md",
            "---\npara: project\ntags: [p]\n---\nsee [[Projct_A#Intro]] and [[Projct_A^b1|block]]\n",
        )
        auditor.repair(auditor.audit())
        assert _read(layout, "1_Project/Project_A/Log.md").endswith(
            "see [[Project_A#Intro]] and [[Project_A^b1|block]]\n"
        )
        assert auditor.audit().broken_links == []

    def test_blank_targets_are_unwrapped(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/Blank.md", "---\npara: resource\ntags: [a]\n---\nA [[ |shown]] B [[ ]] C\n")

        report = auditor.audit()
        assert [link.link_target for link in report.broken_links] == [""]
        assert report.broken_links[0].suggestion is None

        auditor.repair(report)
        text = _read(layout, "3_Resource/Blank.md")
        assert text.endswith("A shown B  C\n")
        assert "[[" not in text

    def test_missing_embed_loses_its_bang(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/Pic.md", "---\npara: resource\ntags: [a]\n---\nbefore ![[nothing_like_it.png]] after\n")
        auditor.repair(auditor.audit())
        assert _read(layout, "3_Resource/Pic.md").endswith("before nothing_like_it.png after\n")

    def test_fixed_embed_keeps_its_bang(self, layout, auditor, write_file):
        write_file(layout.root / "3_Resource/Diagram.md", "---\npara: resource\ntags: [a]\n---\nd\n")
        write_file(layout.root / "3_Resource/Uses.md", "---\npara: resource\ntags: [a]\n---\n![[Diagrm]]\n")
        auditor.repair(auditor.audit())
        assert _read(layout, "3_Resource/Uses.md").endswith("![[Diagram]]\n")
