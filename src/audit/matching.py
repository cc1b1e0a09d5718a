# src/audit/matching.py — v2
"""Fuzzy note-name matching for broken reference suggestions.

Strategies, tried in order, first hit wins:
  1. exact: case-insensitive equality
  2. substring: either name contains the other, shortest name wins
  3. edit_distance: Levenshtein nearest within max(3, len(target) // 3)
  4. token_overlap: underscore tokens, target has >= 2 and shares >= 2

Candidates are visited in sorted order so ties resolve the same way on
every run.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal, NamedTuple

MatchMethod = Literal["exact", "substring", "edit_distance", "token_overlap"]

MIN_DISTANCE_TOLERANCE = 3
MIN_OVERLAP_TOKENS = 2


class NameMatch(NamedTuple):
    name: str
    method: MatchMethod


def resolution_key(target: str) -> str:
    """Reference target without heading/block anchors and note extension."""
    key = target.split("#", 1)[0].split("^", 1)[0].strip()
    for suffix in (".md", ".markdown"):
        if key.lower().endswith(suffix):
            return key[: -len(suffix)]
    return key


def lookup_name(target: str) -> str:
    """Last path segment of the resolution key, the part compared to note names."""
    return resolution_key(target).rsplit("/", 1)[-1]


def anchor_of(target: str) -> str:
    """The ``#heading`` or ``^block`` suffix of *target*, empty if it has none."""
    cut = [i for i in (target.find("#"), target.find("^")) if i >= 0]
    return target[min(cut) :] if cut else ""


def levenshtein(a: str, b: str) -> int:
    """Edit distance between *a* and *b* (two-row dynamic programming)."""
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
        previous = current
    return previous[-1]


def max_distance(target: str) -> int:
    """Largest edit distance tolerated for *target*; grows with its length."""
    return max(MIN_DISTANCE_TOLERANCE, len(target) // 3)


def within_tolerance(target: str, candidate: str) -> bool:
    return levenshtein(target.lower(), candidate.lower()) <= max_distance(target)


def _tokens(name: str) -> set[str]:
    return {t for t in name.lower().split("_") if t}


def find_closest_match(target: str, names: Iterable[str]) -> NameMatch | None:
    """Best existing note name for a reference *target* that resolved to nothing."""
    candidates = sorted(n for n in set(names) if n)
    lower_target = target.lower()
    if not lower_target or not candidates:
        return None

    for name in candidates:
        if name.lower() == lower_target:
            return NameMatch(name, "exact")

    substring_hits = [
        n for n in candidates if lower_target in n.lower() or n.lower() in lower_target
    ]
    if substring_hits:
        return NameMatch(min(substring_hits, key=len), "substring")

    limit = max_distance(lower_target)
    best: str | None = None
    best_distance = limit + 1
    for name in candidates:
        distance = levenshtein(lower_target, name.lower())
        if distance < best_distance:
            best, best_distance = name, distance
    if best is not None:
        return NameMatch(best, "edit_distance")

    target_tokens = _tokens(lower_target)
    if len(target_tokens) < MIN_OVERLAP_TOKENS:
        return None
    best_overlap = MIN_OVERLAP_TOKENS - 1
    for name in candidates:
        overlap = len(target_tokens & _tokens(name))
        if overlap > best_overlap:
            best, best_overlap = name, overlap
    return NameMatch(best, "token_overlap") if best is not None else None


def is_accepted(target: str, match: NameMatch) -> bool:
    """Whether a suggestion is safe to substitute without asking.

    Substring hits are only trusted when they are also close by edit distance;
    the other strategies are trusted as-is.
    """
    if match.method == "substring":
        return within_tolerance(target, match.name)
    return True
