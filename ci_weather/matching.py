"""
Pattern Matching
================
Compiled pattern sets for job and step names.

- PatternSet: regex list (fatal steps, required jobs), compiled once.
  Malformed patterns are skipped with a warning instead of aborting.
- CategoryMatcher: ordered (category, predicate) pairs; the first
  predicate that accepts a job name wins.
"""

import logging
import re
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)


class PatternSet:
    """A list of compiled regexes matched with re.search semantics."""

    def __init__(self, patterns: Iterable[str] = (), kind: str = "pattern"):
        self.kind = kind
        self.patterns: list[re.Pattern] = []
        for raw in patterns:
            try:
                self.patterns.append(re.compile(raw))
            except re.error as e:
                logger.warning(f"Skipping malformed {kind} regex {raw!r}: {e}")

    @classmethod
    def from_config(
        cls,
        entries: Iterable[Any],
        kind: str = "pattern",
        default: Iterable[str] = (),
    ) -> "PatternSet":
        """Build from config entries (plain strings or {pattern: ...} dicts).

        Falls back to `default` when nothing usable is configured.
        """
        raw = []
        for entry in entries or []:
            if isinstance(entry, dict):
                entry = entry.get("pattern")
            if entry:
                raw.append(str(entry))
        pattern_set = cls(raw, kind=kind)
        if not pattern_set.patterns and default:
            pattern_set = cls(default, kind=kind)
        return pattern_set

    def matches(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(p.search(text) for p in self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return f"PatternSet({self.kind}: {[p.pattern for p in self.patterns]})"


Predicate = Callable[[str], bool]


def contains_any(needles: Iterable[str]) -> Predicate:
    """Case-insensitive substring predicate."""
    lowered = [n.lower() for n in needles if n]

    def predicate(name: str) -> bool:
        name_lower = name.lower()
        return any(n in name_lower for n in lowered)

    return predicate


class CategoryMatcher:
    """Assign job names to the first matching category."""

    def __init__(self, rules: Iterable[tuple[str, Predicate]] = ()):
        self.rules = list(rules)

    @classmethod
    def from_config(cls, categories: Iterable[Any]) -> "CategoryMatcher":
        """Build from [{id, patterns: [...]}] entries, in config order."""
        rules = []
        for category in categories or []:
            if isinstance(category, dict):
                cat_id, patterns = category.get("id"), category.get("patterns", [])
            else:
                cat_id, patterns = category.id, category.patterns
            if cat_id and patterns:
                rules.append((cat_id, contains_any(patterns)))
        return cls(rules)

    def match(self, name: str) -> Optional[str]:
        for category, predicate in self.rules:
            if predicate(name):
                return category
        return None

    def categorize(self, names: Iterable[str]) -> dict[str, list[str]]:
        """Group names by category; unmatched names are left out."""
        groups: dict[str, list[str]] = {category: [] for category, _ in self.rules}
        for name in names:
            category = self.match(name)
            if category is not None:
                groups[category].append(name)
        return groups

    @property
    def categories(self) -> list[str]:
        return [category for category, _ in self.rules]
