# src/audit/auditor.py — v3
"""Full-vault consistency audit and best-effort repair.

Audit scans every note under the four category folders for:
  - ``[[target]]`` / ``[[target|display]]`` references in the body that
    resolve to no note (by basename, full relative path, or trailing segments)
  - notes with no metadata block
  - notes whose metadata block has no category
  - notes with no tags (reported, never repaired)
  - notes whose metadata block is not valid YAML (reported, never repaired)

Repair works one file at a time, reads it once and writes it once:
  1. broken references: accepted suggestion -> target replaced;
     otherwise the brackets (and the ``!`` of an embed) are removed, leaving
     the target or display text; anchors survive a substitution
  2. no metadata block -> minimal block injected
  3. block without category -> category line inserted, all other bytes kept

Reference edits only ever touch the body; the metadata block is copied
through unchanged.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from pathlib import Path, PurePosixPath

from paravault.audit.matching import anchor_of, find_closest_match, lookup_name, resolution_key
from paravault.audit.models import AuditReport, BrokenLink, RepairResult
from paravault.core.cancellation import CancellationToken
from paravault.core.models import Category
from paravault.storage.atomic import atomic_write_text
from paravault.vault import frontmatter
from paravault.vault.layout import VaultLayout

logger = logging.getLogger(__name__)

LINK_RE = re.compile(r"(?P<embed>!?)\[\[(?P<inner>[^\]]+)\]\]")
DEFAULT_CATEGORY = Category.RESOURCE


def split_link(inner: str) -> tuple[str, str | None]:
    """``target|display`` -> (target, display); display is None without a pipe."""
    target, sep, display = inner.partition("|")
    return target.strip(), (display if sep else None)


class LinkIndex:
    """Every name a reference can resolve to.

    Attachments placed under ``_Assets`` folders resolve by file name so
    ``![[report.pdf]]`` embeds in companion notes are not reported.
    """

    def __init__(self, relative_paths: list[str], attachments: list[str] | None = None) -> None:
        self.names: set[str] = set()
        self._paths: set[str] = set()
        self._attachments = {PurePosixPath(a).name for a in attachments or []}
        for rel in relative_paths:
            no_ext = str(PurePosixPath(rel).with_suffix(""))
            self._paths.add(no_ext)
            self.names.add(PurePosixPath(no_ext).name)

    def resolves(self, target: str) -> bool:
        key = resolution_key(target)
        if not key:
            # Same-note anchor such as [[#Heading]].
            return True
        if key in self.names or key in self._paths:
            return True
        if PurePosixPath(key).name in self._attachments:
            return True
        if "/" in key:
            if any(p.endswith("/" + key) for p in self._paths):
                return True
            return PurePosixPath(key).name in self.names
        return False


class VaultAuditor:
    """Scan a vault for consistency issues and repair what is safe to repair."""

    def __init__(self, layout: VaultLayout, cancel: CancellationToken | None = None) -> None:
        self._layout = layout
        self._cancel = cancel

    def _check_cancelled(self) -> None:
        if self._cancel is not None:
            self._cancel.raise_if_cancelled()

    # --- Audit ---

    def audit(self) -> AuditReport:
        files = self._layout.iter_documents()
        rel_paths = [self._layout.relative(p) for p in files]
        index = LinkIndex(
            rel_paths, [self._layout.relative(p) for p in self._layout.iter_attachments()]
        )

        broken: list[BrokenLink] = []
        missing_frontmatter: list[str] = []
        missing_category: list[str] = []
        untagged: list[str] = []
        unparseable: list[str] = []
        scanned = 0

        for path, rel in zip(files, rel_paths):
            self._check_cancelled()
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable note %s: %s", rel, e)
                continue
            scanned += 1

            block, body = frontmatter.split(text)
            if block is None:
                missing_frontmatter.append(rel)
            if block is not None and not block.valid:
                unparseable.append(rel)
            else:
                fields = block.fields if block else {}
                if frontmatter.category_of(fields) is None:
                    missing_category.append(rel)
                if not frontmatter.tags_of(fields):
                    untagged.append(rel)

            seen_targets: set[str] = set()
            for match in LINK_RE.finditer(body):
                target, _ = split_link(match.group("inner"))
                if target in seen_targets:
                    continue
                # A blank target can never resolve; it is reported so repair unwraps it.
                if target and index.resolves(target):
                    continue
                seen_targets.add(target)
                suggestion = find_closest_match(lookup_name(target), index.names) if target else None
                broken.append(
                    BrokenLink(
                        file_path=rel,
                        link_target=target,
                        suggestion=suggestion.name if suggestion else None,
                        match_method=suggestion.method if suggestion else None,
                    )
                )

        report = AuditReport(
            broken_links=broken,
            missing_frontmatter=missing_frontmatter,
            missing_category=missing_category,
            untagged_files=untagged,
            unparseable_frontmatter=unparseable,
            total_scanned=scanned,
        )
        logger.info(
            "Audit scanned %d notes: %d broken links, %d without metadata, %d without category, "
            "%d untagged, %d unparseable",
            scanned, len(broken), len(missing_frontmatter), len(missing_category), len(untagged),
            len(unparseable),
        )
        return report

    # --- Repair ---

    def repair(self, report: AuditReport) -> RepairResult:
        links_by_file: dict[str, list[BrokenLink]] = defaultdict(list)
        for link in report.broken_links:
            links_by_file[link.file_path].append(link)
        no_block = set(report.missing_frontmatter)
        no_category = set(report.missing_category)

        targets = sorted(set(links_by_file) | no_block | no_category)
        result = RepairResult()
        for rel in targets:
            self._check_cancelled()
            try:
                changed = self._repair_file(
                    rel,
                    links_by_file.get(rel, []),
                    inject_block=rel in no_block,
                    fix_category=rel in no_category and rel not in no_block,
                    result=result,
                )
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning("Repair failed for %s: %s", rel, e)
                result.failed.append(rel)
                continue
            if changed:
                result.repaired_files.append(rel)

        logger.info(
            "Repair: %d links fixed, %d links unwrapped, %d blocks injected, %d categories set, %d failed",
            result.links_fixed, result.links_stripped, result.frontmatter_injected,
            result.category_fixed, len(result.failed),
        )
        return result

    def _repair_file(
        self,
        rel: str,
        links: list[BrokenLink],
        inject_block: bool,
        fix_category: bool,
        result: RepairResult,
    ) -> bool:
        path = self._layout.absolute(rel)
        original = path.read_text(encoding="utf-8")
        text = original

        fixes = {link.link_target: link.suggestion for link in links if link.fixable}
        strips = {link.link_target for link in links if not link.fixable}
        fixed = stripped = 0
        if fixes or strips:
            block = frontmatter.parse(text)
            head_end = block.end if block else 0
            head, body = text[:head_end], text[head_end:]

            def substitute(match: re.Match[str]) -> str:
                nonlocal fixed, stripped
                target, display = split_link(match.group("inner"))
                if target in fixes:
                    fixed += 1
                    new_target = fixes[target] + anchor_of(target)
                    inner = f"{new_target}|{display}" if display is not None else new_target
                    return f"{match.group('embed')}[[{inner}]]"
                if target in strips:
                    stripped += 1
                    return (display if display is not None else target).strip()
                return match.group(0)

            text = head + LINK_RE.sub(substitute, body)

        category = Category.from_path(rel) or DEFAULT_CATEGORY
        injected = category_set = False
        if inject_block:
            # Re-check: the file may have gained a block since the audit.
            if frontmatter.parse(text) is None:
                text = frontmatter.render(frontmatter.minimal_fields(category)) + text
                injected = True
        elif fix_category:
            block = frontmatter.parse(text)
            # An unparseable block is left alone: its keys cannot be seen.
            if block is not None and block.valid and frontmatter.category_of(block.fields) is None:
                if frontmatter.CATEGORY_KEY in block.fields:
                    text = frontmatter.set_field(text, frontmatter.CATEGORY_KEY, category.value)
                else:
                    text = frontmatter.insert_first(text, frontmatter.CATEGORY_KEY, category.value)
                category_set = True

        if text == original:
            return False
        atomic_write_text(path, text)
        result.links_fixed += fixed
        result.links_stripped += stripped
        result.frontmatter_injected += int(injected)
        result.category_fixed += int(category_set)
        logger.debug("Repaired %s", rel)
        return True
