# src/audit/models.py — v2
"""Audit and repair models: BrokenLink, AuditReport, RepairResult."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from paravault.audit.matching import MatchMethod, NameMatch, is_accepted
from paravault.audit.matching import lookup_name as _lookup_name


class BrokenLink(BaseModel):
    """A ``[[reference]]`` whose target matches no note in the vault."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    link_target: str
    suggestion: str | None = None
    match_method: MatchMethod | None = None

    @property
    def lookup_name(self) -> str:
        """Target name without anchors, extension or folders."""
        return _lookup_name(self.link_target)

    @property
    def fixable(self) -> bool:
        if self.suggestion is None or self.match_method is None:
            return False
        return is_accepted(self.lookup_name, NameMatch(self.suggestion, self.match_method))


class AuditReport(BaseModel):
    """Issues found by one full-vault scan. Paths are vault-relative."""

    model_config = ConfigDict(frozen=True)

    broken_links: list[BrokenLink] = Field(default_factory=list)
    missing_frontmatter: list[str] = Field(default_factory=list)
    missing_category: list[str] = Field(default_factory=list)
    untagged_files: list[str] = Field(default_factory=list)
    # Metadata block present but not a YAML mapping; reported, never rewritten.
    unparseable_frontmatter: list[str] = Field(default_factory=list)
    total_scanned: int = 0

    @property
    def total_issues(self) -> int:
        """Issues repair can act on; untagged files are reported only."""
        return len(self.broken_links) + len(self.missing_frontmatter) + len(self.missing_category)


class RepairResult(BaseModel):
    """Counters of one repair pass."""

    links_fixed: int = 0
    links_stripped: int = 0
    frontmatter_injected: int = 0
    category_fixed: int = 0
    failed: list[str] = Field(default_factory=list)
    repaired_files: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.links_fixed + self.links_stripped + self.frontmatter_injected + self.category_fixed
