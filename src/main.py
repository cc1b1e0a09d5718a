# src/main.py — v4
"""CLI entry point: ingest, check, audit, dedup, reorganize and status commands.

Usage:
    paravault ingest <root>
    paravault check <root> [--no-repair] [--no-enrich]
    paravault audit <root> [--json]
    paravault dedup <root> <folder>
    paravault reorganize <root> <folder>
    paravault status <root>

Exit codes: 0 ok, 1 error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from paravault.config.settings import ConfigurationError, Settings, load_settings
from paravault.core.cancellation import CancellationToken
from paravault.core.errors import ParaVaultError
from paravault.core.models import Category, FileStatus
from paravault.logging.logger import setup_logging
from paravault.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)

    root: Path = args.root.expanduser()
    if not root.is_dir():
        logger.error("Not a directory: %s", root)
        return 1

    cancel = CancellationToken()
    try:
        return asyncio.run(_run_command(args, settings, cancel))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ParaVaultError as exc:
        logger.error("%s", exc, exc_info=args.verbose)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


async def _run_command(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Run one command with Ctrl-C mapped to the cancellation token.

    The first interrupt lets the running pass stop between units of work;
    the handler is then removed so a second one aborts immediately.
    """
    loop = asyncio.get_running_loop()

    def interrupt() -> None:
        logger.warning("Interrupt received, stopping after the current step (Ctrl-C again to abort)")
        cancel.cancel()
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, interrupt)
        installed = True
    except (NotImplementedError, RuntimeError):
        # No loop signal support (Windows): Ctrl-C raises KeyboardInterrupt instead.
        logger.debug("SIGINT handler not installed")
        installed = False
    try:
        return await args.func(args, settings, cancel)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="paravault",
        description=f"paravault v{__version__}: inbox classifier and vault consistency checker",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- ingest ---
    p_ingest = subparsers.add_parser("ingest", help="Classify and place inbox files")
    p_ingest.add_argument("root", type=Path, help="Vault root")
    p_ingest.add_argument(
        "--fast-only", action="store_true",
        help="Skip the precise stage for low-confidence results",
    )
    p_ingest.set_defaults(func=_cmd_ingest)

    # --- check ---
    p_check = subparsers.add_parser("check", help="Audit, repair and refresh fingerprints")
    p_check.add_argument("root", type=Path, help="Vault root")
    p_check.add_argument(
        "--no-repair", action="store_true",
        help="Report issues without modifying notes",
    )
    p_check.add_argument(
        "--no-enrich", action="store_true",
        help="Do not ask the LLM to fill in missing tags and summaries",
    )
    p_check.set_defaults(func=_cmd_check)

    # --- audit ---
    p_audit = subparsers.add_parser("audit", help="Report consistency issues only")
    p_audit.add_argument("root", type=Path, help="Vault root")
    p_audit.add_argument("--json", action="store_true", help="Print the report as JSON")
    p_audit.set_defaults(func=_cmd_audit)

    # --- dedup ---
    p_dedup = subparsers.add_parser("dedup", help="Remove duplicate files from a folder")
    p_dedup.add_argument("root", type=Path, help="Vault root")
    p_dedup.add_argument("folder", help="Vault-relative folder, e.g. 3_Resource/DevOps")
    p_dedup.set_defaults(func=_cmd_dedup)

    # --- reorganize ---
    p_reorg = subparsers.add_parser(
        "reorganize", help="Reclassify the notes of one subfolder",
    )
    p_reorg.add_argument("root", type=Path, help="Vault root")
    p_reorg.add_argument("folder", help="Vault-relative subfolder, e.g. 2_Area/Ops")
    p_reorg.set_defaults(func=_cmd_reorganize)

    # --- status ---
    p_status = subparsers.add_parser("status", help="Show changed/new/unchanged counts")
    p_status.add_argument("root", type=Path, help="Vault root")
    p_status.set_defaults(func=_cmd_status)

    return parser


# === COMMANDS ===


async def _cmd_ingest(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Classify inbox files and place the confident ones."""
    from paravault.extraction.text_extractor import PlainTextExtractor
    from paravault.pipeline.ingest import InboxProcessor
    from paravault.placement.mover import FileMover
    from paravault.placement.resolver import PlacementResolver

    layout, cache = _vault(args.root, settings)
    layout.initialize()
    dispatcher, fast, precise = _classification(settings, cancel)
    extractor = PlainTextExtractor()

    processor = InboxProcessor(
        layout=layout,
        cache=cache,
        dispatcher=dispatcher,
        fast=fast,
        precise=None if args.fast_only else precise,
        resolver=PlacementResolver(settings.confirmation_threshold),
        mover=FileMover(layout, extractor),
        extractor=extractor,
        escalation_threshold=settings.escalation_threshold,
        max_length=settings.extract_max_length,
        preview_length=settings.preview_length,
        cancel=cancel,
    )
    result = await processor.run()

    print("\nIngest complete:")
    print(f"  Placed:    {len(result.placed)}")
    print(f"  Pending:   {len(result.pending)}")
    print(f"  Rejected:  {len(result.rejected)}")
    print(f"  Skipped:   {len(result.skipped)}")
    for placed in result.placed:
        print(f"  + {placed.source} -> {placed.note_path}")
    for pending in result.pending:
        options = ", ".join(_describe(alt) for alt in pending.alternatives)
        print(f"  ? {pending.file_name} ({pending.reason.value}): {options}")
    for rejected in result.rejected:
        print(f"  ! {rejected.file_name}: {rejected.error.message}")
    return 130 if result.cancelled else 0


async def _cmd_check(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Audit, repair, enrich and refresh the fingerprint cache."""
    from paravault.pipeline.vault_check import VaultCheckPipeline

    layout, cache = _vault(args.root, settings)
    enricher = None
    if not args.no_repair and not args.no_enrich:
        enricher = _enricher(layout, settings, cancel)
    pipeline = VaultCheckPipeline(
        layout, cache, repair=not args.no_repair, enricher=enricher, cancel=cancel
    )
    result = await pipeline.run()

    if result.report is not None:
        report = result.report
        print(f"\nScanned {report.total_scanned} notes:")
        print(f"  Broken links:         {len(report.broken_links)}")
        print(f"  Missing frontmatter:  {len(report.missing_frontmatter)}")
        print(f"  Missing category:     {len(report.missing_category)}")
        print(f"  Untagged:             {len(report.untagged_files)}")
        print(f"  Unparseable metadata: {len(report.unparseable_frontmatter)}")
    repair = result.repair
    print("Repair:")
    print(f"  Links fixed:          {repair.links_fixed}")
    print(f"  Links stripped:       {repair.links_stripped}")
    print(f"  Frontmatter injected: {repair.frontmatter_injected}")
    print(f"  Category fixed:       {repair.category_fixed}")
    print(f"  Failed:               {len(repair.failed)}")
    if enricher is not None:
        enrichment = result.enrichment
        print("Enrichment:")
        print(f"  Notes updated:        {len(enrichment.enriched)}")
        print(f"  Fields filled:        {enrichment.fields_filled}")
        print(f"  Failed:               {len(enrichment.failed)}")
    print(f"Changed notes: {len(result.changed)}, new notes: {len(result.new)}")
    return 130 if result.cancelled else 0


async def _cmd_audit(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Print the audit report without touching any file."""
    from paravault.audit.auditor import VaultAuditor

    layout, _ = _vault(args.root, settings)
    report = await asyncio.to_thread(VaultAuditor(layout, cancel=cancel).audit)

    if args.json:
        print(report.model_dump_json(indent=2))
        return 0

    print(f"\nScanned {report.total_scanned} notes, {report.total_issues} issues")
    for link in report.broken_links:
        hint = f" (did you mean [[{link.suggestion}]]?)" if link.suggestion else ""
        print(f"  {link.file_path}: [[{link.link_target}]]{hint}")
    for rel in report.missing_frontmatter:
        print(f"  {rel}: no frontmatter")
    for rel in report.missing_category:
        print(f"  {rel}: no category")
    for rel in report.untagged_files:
        print(f"  {rel}: no tags")
    for rel in report.unparseable_frontmatter:
        print(f"  {rel}: frontmatter is not valid YAML")
    return 0


async def _cmd_dedup(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Remove files whose body duplicates an earlier file in the folder."""
    from paravault.batch.dedup import Deduplicator
    from paravault.storage.trash import create_trash

    layout, cache = _vault(args.root, settings)
    folder = layout.absolute(args.folder)
    if not folder.is_dir():
        logger.error("Not a directory: %s", folder)
        return 1

    trash = create_trash(settings.trash_backend, layout.root, settings.state_dirname)
    files = sorted(p for p in folder.iterdir() if p.is_file() and not p.name.startswith("."))
    result = await Deduplicator(trash, cancel=cancel).deduplicate(files)

    await cache.load()
    await cache.forget(d.path for d in result.duplicates)
    await cache.save()

    print(f"\nDedup of {args.folder}:")
    print(f"  Unique:      {len(result.unique)}")
    print(f"  Duplicates:  {result.removed_count}")
    print(f"  Failed:      {len(result.failed)}")
    for dup in result.duplicates:
        print(f"  - {dup.path.name} (same as {dup.survivor.name})")
    return 1 if result.failed else 0


async def _cmd_reorganize(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Reclassify one subfolder and report notes that belong elsewhere."""
    from paravault.batch.dedup import Deduplicator
    from paravault.extraction.text_extractor import PlainTextExtractor
    from paravault.pipeline.reorganize import FolderReorganizer
    from paravault.storage.trash import create_trash

    category = Category.from_path(args.folder)
    if category is None:
        logger.error("Folder is not under a category folder: %s", args.folder)
        return 1
    subfolder = args.folder.strip("/").split("/", 1)[-1]

    layout, cache = _vault(args.root, settings)
    dispatcher, fast, precise = _classification(settings, cancel)
    trash = create_trash(settings.trash_backend, layout.root, settings.state_dirname)
    reorganizer = FolderReorganizer(
        layout=layout,
        cache=cache,
        dispatcher=dispatcher,
        fast=fast,
        precise=precise,
        deduplicator=Deduplicator(trash, cancel=cancel),
        extractor=PlainTextExtractor(),
        escalation_threshold=settings.escalation_threshold,
        max_length=settings.extract_max_length,
        preview_length=settings.preview_length,
        cancel=cancel,
    )
    result = await reorganizer.run(category, subfolder)

    print(f"\nReorganized {result.folder}:")
    print(f"  Duplicates removed: {result.dedup.removed_count}")
    print(f"  Updated:            {len(result.updated)}")
    print(f"  Misclassified:      {len(result.misclassified)}")
    print(f"  Rejected:           {len(result.rejected)}")
    for pending in result.misclassified:
        print(f"  ? {pending.file_name}: {_describe(pending.alternatives[0])}")
    return 130 if result.cancelled else 0


async def _cmd_status(
    args: argparse.Namespace, settings: Settings, cancel: CancellationToken
) -> int:
    """Count notes that changed since the last check, without updating the cache."""
    layout, cache = _vault(args.root, settings)
    await cache.load()
    documents = await asyncio.to_thread(layout.iter_documents)
    statuses = await cache.check_many(documents)
    counts = {status: 0 for status in FileStatus}
    for status in statuses.values():
        counts[status] += 1

    print(f"\nStatus of {layout.root}:")
    print(f"  Inbox:      {len(layout.inbox_files())}")
    print(f"  Unchanged:  {counts[FileStatus.UNCHANGED]}")
    print(f"  Modified:   {counts[FileStatus.MODIFIED]}")
    print(f"  New:        {counts[FileStatus.NEW]}")
    return 0


# === WIRING ===


def _vault(root: Path, settings: Settings):
    from paravault.cache.store import FingerprintCache
    from paravault.vault.layout import VaultLayout

    layout = VaultLayout(root, state_dirname=settings.state_dirname)
    cache = FingerprintCache(layout.root, state_dirname=settings.state_dirname)
    return layout, cache


def _classification(settings: Settings, cancel: CancellationToken):
    """Dispatcher plus fast and precise stages for the configured provider."""
    from paravault.classification.dispatcher import ClassificationDispatcher, DispatchStage
    from paravault.classification.llm_classifier import LLMClassifier
    from paravault.llm.client_factory import create_llm_client
    from paravault.ratelimit.limiter import (
        DEFAULT_POLICIES,
        UNKNOWN_PROVIDER_POLICY,
        RateLimiter,
    )

    default = DEFAULT_POLICIES.get(settings.llm_provider, UNKNOWN_PROVIDER_POLICY)
    limiter = RateLimiter(policies=settings.rate_limit_overrides(default))
    dispatcher = ClassificationDispatcher(
        limiter,
        max_concurrent_batches=settings.max_concurrent_batches,
        max_retries=settings.max_retries,
        cancel=cancel,
    )

    def stage(name: str, model: str, batch_size: int) -> DispatchStage:
        client = create_llm_client(
            settings.llm_provider, model, settings, timeout_s=settings.llm_timeout_s
        )
        classifier = LLMClassifier(
            client,
            stage=name,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )
        return DispatchStage(name=name, classifier=classifier, batch_size=batch_size)

    fast = stage("fast", settings.llm_fast_model, settings.classify_batch_size)
    precise = stage("precise", settings.llm_precise_model, settings.precise_batch_size)
    return dispatcher, fast, precise


def _enricher(layout, settings: Settings, cancel: CancellationToken):
    """Enricher on the fast stage, or None when the provider has no API key."""
    from paravault.extraction.text_extractor import PlainTextExtractor
    from paravault.llm.client_factory import has_api_key
    from paravault.pipeline.enrich import NoteEnricher

    if not has_api_key(settings.llm_provider, settings):
        logger.info("No API key for %s, skipping metadata enrichment", settings.llm_provider)
        return None
    dispatcher, fast, _ = _classification(settings, cancel)
    return NoteEnricher(
        layout,
        dispatcher,
        fast,
        PlainTextExtractor(),
        max_length=settings.extract_max_length,
        preview_length=settings.preview_length,
        cancel=cancel,
    )


def _describe(result) -> str:
    if result.category is Category.PROJECT and result.project:
        return f"{result.category.value}:{result.project} ({result.confidence:.2f})"
    where = f"/{result.destination_folder}" if result.destination_folder else ""
    return f"{result.category.value}{where} ({result.confidence:.2f})"


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
