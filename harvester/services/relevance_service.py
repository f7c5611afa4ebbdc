"""Heuristic filter for records that report quantitative performance data."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable, List, Optional

from harvester.config import DEFAULT_INDICATOR_TERMS
from harvester.core.models import Paper

NUMERIC_UNIT_PATTERN = re.compile(r"\d+\.?\d*\s*(mW|W|mA|A|V|%)", re.IGNORECASE)


class RelevanceFilter:
    """Two-tier evidence rule.

    A record is relevant when at least ``min_matches`` distinct indicator
    phrases appear in its title, abstract and keywords. Failing that, one
    indicator phrase plus a numeric value followed by a power, current,
    voltage or percentage unit is enough. A bare percentage alone never is.
    """

    def __init__(
        self,
        indicator_terms: Optional[Iterable[str]] = None,
        *,
        min_matches: int = 2,
    ) -> None:
        terms = DEFAULT_INDICATOR_TERMS if indicator_terms is None else indicator_terms
        self.indicator_terms: List[str] = list(
            dict.fromkeys(term.strip().lower() for term in terms if term.strip())
        )
        self.min_matches = min_matches

    @staticmethod
    def text_blob(paper: Paper) -> str:
        keywords = " ".join(sorted(paper.keywords))
        return f"{paper.title} {paper.abstract or ''} {keywords}".lower()

    def count_indicators(self, text: str) -> int:
        return sum(1 for term in self.indicator_terms if term in text)

    def is_relevant(self, paper: Paper) -> bool:
        text = self.text_blob(paper)
        matches = self.count_indicators(text)
        if matches >= self.min_matches:
            return True
        return matches >= 1 and NUMERIC_UNIT_PATTERN.search(text) is not None

    def apply(self, paper: Paper) -> Paper:
        """Return a copy of ``paper`` with ``has_performance_data`` set."""

        return replace(paper, has_performance_data=self.is_relevant(paper))
