"""
Keyword query evaluator.

Syntax: comma = OR, whitespace = AND, case-insensitive substring containment.

    "ORANGE ABONNEMENT"  -> label contains "orange" and "abonnement"
    "ORANGE, SFR"        -> label contains "orange" or "sfr"
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class KeywordQuery:
    """A parsed query: OR-groups of AND-terms, all lower-cased."""
    groups: Tuple[Tuple[str, ...], ...]

    @classmethod
    def parse(cls, query: str) -> "KeywordQuery":
        groups = []
        for raw_group in (query or "").split(","):
            group = raw_group.strip().lower()
            if not group:
                continue
            terms = tuple(term for term in group.split() if term)
            if terms:
                groups.append(terms)
        return cls(groups=tuple(groups))

    @property
    def is_empty(self) -> bool:
        return not self.groups

    def matches(self, label: str) -> bool:
        """True iff at least one group has all of its terms in the label."""
        if not self.groups:
            return False
        haystack = (label or "").lower()
        return any(
            all(term in haystack for term in terms)
            for terms in self.groups
        )


def evaluate(query: str, label: str) -> bool:
    """Evaluate a keyword query against a transaction label."""
    return KeywordQuery.parse(query).matches(label)
