"""Merge and order suggestions from the rule-based and contextual sources."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from app.schemas import SeverityCounts, Suggestion


def merge(
    rule_based: Sequence[Suggestion], contextual: Sequence[Suggestion]
) -> List[Suggestion]:
    """Concatenate rule-based then contextual suggestions and order by severity.

    Both sources may describe the same reading; nothing is deduplicated.
    ``sorted`` is stable, so equal severities keep their concatenation order.
    """
    combined = [*rule_based, *contextual]
    return sorted(combined, key=lambda suggestion: suggestion.severity.rank)


def count_by_severity(suggestions: Iterable[Suggestion]) -> SeverityCounts:
    totals = {"critical": 0, "warning": 0, "info": 0, "success": 0}
    for suggestion in suggestions:
        totals[suggestion.severity.value] += 1
    return SeverityCounts(**totals)
