# tests/unit/test_main.py — v3
"""Tests for main.py: CLI entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
from argparse import Namespace
from pathlib import Path

import pytest

from paravault import main as main_module
from paravault.classification.dispatcher import ClassificationDispatcher, DispatchStage
from paravault.core.cancellation import CancellationToken
from paravault.core.models import Category, ClassificationResult
from paravault.logging.logger import ROOT_LOGGER_NAME
from paravault.main import _build_parser, _run_command, main
from paravault.ratelimit.limiter import ProviderPolicy, RateLimiter


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path):
    # No stray .env from the working directory; handlers bound to capsys are dropped.
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PARAVAULT_ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("PARAVAULT_GOOGLE_API_KEY", raising=False)
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestBuildParser:
    def test_version_flag(self):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_ingest(self):
        args = _build_parser().parse_args(["ingest", "/vault", "--fast-only"])
        assert args.command == "ingest"
        assert args.root == Path("/vault")
        assert args.fast_only is True

    def test_check_defaults(self):
        args = _build_parser().parse_args(["check", "/vault"])
        assert args.no_repair is False
        assert args.no_enrich is False

    def test_folder_commands(self):
        args = _build_parser().parse_args(["reorganize", "/vault", "2_Area/Ops"])
        assert args.folder == "2_Area/Ops"
        args = _build_parser().parse_args(["dedup", "/vault", "3_Resource/Docs"])
        assert args.folder == "3_Resource/Docs"


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


class TestMainErrors:
    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_root_must_exist(self, tmp_path):
        assert main(["status", str(tmp_path / "missing")]) == 1

    def test_configuration_error(self, monkeypatch, vault_root, capsys):
        monkeypatch.setenv("PARAVAULT_CLASSIFY_BATCH_SIZE", "0")
        assert main(["status", str(vault_root)]) == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_reorganize_outside_category(self, vault_root):
        assert main(["reorganize", str(vault_root), "Elsewhere/Ops"]) == 1


class TestCommands:
    def test_status(self, vault_root, write_file, capsys):
        write_file(vault_root / "3_Resource" / "a.md", "---\npara: resource\n---\nx")
        write_file(vault_root / "_Inbox" / "new.md", "inbox")
        assert main(["status", str(vault_root)]) == 0
        out = capsys.readouterr().out
        assert "Inbox:      1" in out
        assert "New:        1" in out

    def test_audit_json(self, vault_root, write_file, capsys):
        write_file(vault_root / "3_Resource" / "a.md", "[[Missing_Note]]")
        assert main(["audit", str(vault_root), "--json"]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["missing_frontmatter"] == ["3_Resource/a.md"]
        assert report["broken_links"][0]["link_target"] == "Missing_Note"

    def test_check_repairs_then_status_is_clean(self, vault_root, write_file, capsys):
        note = write_file(vault_root / "2_Area" / "b.md", "no block")
        assert main(["check", str(vault_root)]) == 0
        assert note.read_text(encoding="utf-8").startswith("---\npara: area\n")
        capsys.readouterr()

        assert main(["status", str(vault_root)]) == 0
        out = capsys.readouterr().out
        assert "Unchanged:  1" in out
        assert "New:        0" in out

    def test_check_no_repair(self, vault_root, write_file):
        note = write_file(vault_root / "2_Area" / "b.md", "no block")
        assert main(["check", str(vault_root), "--no-repair"]) == 0
        assert note.read_text(encoding="utf-8") == "no block"

    def test_dedup(self, vault_root, write_file, capsys):
        write_file(vault_root / "3_Resource" / "Docs" / "a.md", "same")
        dup = write_file(vault_root / "3_Resource" / "Docs" / "b.md", "same")
        assert main(["dedup", str(vault_root), "3_Resource/Docs"]) == 0
        assert not dup.exists()
        assert "Duplicates:  1" in capsys.readouterr().out
        assert list((vault_root / ".paravault" / "trash").rglob("b.md"))

    def test_dedup_missing_folder(self, vault_root):
        assert main(["dedup", str(vault_root), "3_Resource/Nope"]) == 1

    def test_ingest_with_fake_classifier(
        self, monkeypatch, vault_root, write_file, classifier_factory, capsys
    ):
        write_file(vault_root / "_Inbox" / "k8s.md", "kubectl apply")
        classifier = classifier_factory(
            lambda item: ClassificationResult(
                category=Category.RESOURCE,
                destination_folder="DevOps",
                tags=["k8s"],
                confidence=0.95,
            )
        )

        def fake_classification(settings, cancel):
            limiter = RateLimiter({"anthropic": ProviderPolicy(min_interval=0.001, slot_count=1)})
            dispatcher = ClassificationDispatcher(limiter, cancel=cancel)
            return dispatcher, DispatchStage("fast", classifier), None

        monkeypatch.setattr(main_module, "_classification", fake_classification)
        assert main(["ingest", str(vault_root)]) == 0

        placed = vault_root / "3_Resource" / "DevOps" / "k8s.md"
        assert placed.exists()
        assert not (vault_root / "_Inbox" / "k8s.md").exists()
        assert "Placed:    1" in capsys.readouterr().out
        assert classifier.calls == [["k8s.md"]]

    def test_check_enriches_with_configured_key(
        self, monkeypatch, vault_root, write_file, classifier_factory, capsys
    ):
        note = write_file(vault_root / "2_Area" / "Ops" / "Run.md", "---\npara: area\n---\nrestart the service\n")
        classifier = classifier_factory(
            lambda item: ClassificationResult(
                category=Category.AREA, tags=["ops"], summary="How to restart", confidence=0.9
            )
        )

        def fake_classification(settings, cancel):
            limiter = RateLimiter({"anthropic": ProviderPolicy(min_interval=0.001, slot_count=1)})
            dispatcher = ClassificationDispatcher(limiter, cancel=cancel)
            return dispatcher, DispatchStage("fast", classifier), None

        monkeypatch.setattr(main_module, "_classification", fake_classification)
        monkeypatch.setenv("PARAVAULT_ANTHROPIC_API_KEY", "test-key")
        assert main(["check", str(vault_root)]) == 0

        assert "tags: [ops]" in note.read_text(encoding="utf-8")
        assert "Notes updated:        1" in capsys.readouterr().out
        assert classifier.calls == [["Run.md"]]

        assert main(["check", str(vault_root), "--no-enrich"]) == 0
        assert classifier.calls == [["Run.md"]]

    def test_check_without_key_skips_enrichment(self, vault_root, write_file, capsys):
        write_file(vault_root / "2_Area" / "Run.md", "---\npara: area\n---\nbody\n")
        assert main(["check", str(vault_root)]) == 0
        assert "Enrichment:" not in capsys.readouterr().out


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers need POSIX")
class TestInterrupt:
    @pytest.mark.asyncio
    async def test_sigint_sets_the_cancellation_token(self):
        cancel = CancellationToken()

        async def command(args, settings, token):
            os.kill(os.getpid(), signal.SIGINT)
            for _ in range(100):
                if token.cancelled:
                    return 130
                await asyncio.sleep(0.01)
            return 0

        code = await _run_command(Namespace(func=command), None, cancel)
        assert code == 130
        assert cancel.cancelled

    @pytest.mark.asyncio
    async def test_handler_removed_after_command(self):
        async def command(args, settings, token):
            return 0

        loop = asyncio.get_running_loop()
        assert await _run_command(Namespace(func=command), None, CancellationToken()) == 0
        assert loop.remove_signal_handler(signal.SIGINT) is False
