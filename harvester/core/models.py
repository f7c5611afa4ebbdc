from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

RawRecord = Dict[str, Any]


@dataclass(frozen=True)
class Paper:
    """Canonical normalized record produced by a source adapter.

    ``source`` tags the catalog that produced the record (for example
    ``"crossref_comprehensive"``). ``has_performance_data`` is only ever set by
    the relevance filter; adapters leave it ``False``. ``id`` stays ``None``
    until the record store has created the paper.
    """

    title: str
    source: str
    doi: Optional[str] = None
    pubmed_id: Optional[str] = None
    arxiv_id: Optional[str] = None
    authors: Tuple[str, ...] = ()
    abstract: Optional[str] = None
    journal: Optional[str] = None
    publication_date: Optional[date] = None
    external_url: Optional[str] = None
    keywords: FrozenSet[str] = frozenset()
    has_performance_data: bool = False
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("Paper title must be a non-empty string")
        # Accept any iterable from callers while keeping the instance hashable.
        object.__setattr__(self, "authors", tuple(self.authors))
        object.__setattr__(self, "keywords", frozenset(self.keywords))

    def identity(self) -> Dict[str, str]:
        """Return the populated identity fields used for store lookups."""

        fields = {
            "doi": self.doi,
            "pubmed_id": self.pubmed_id,
            "arxiv_id": self.arxiv_id,
            "title": self.title,
        }
        return {key: value for key, value in fields.items() if value}


@dataclass
class SourcePage:
    """One page of raw catalog output."""

    records: List[RawRecord] = field(default_factory=list)
    has_more: bool = False


@dataclass(frozen=True)
class CitationEdge:
    """Directed relation meaning ``citing_id`` cites ``cited_id``."""

    citing_id: str
    cited_id: str

    @property
    def is_self_citation(self) -> bool:
        return self.citing_id == self.cited_id


__all__ = ["CitationEdge", "Paper", "RawRecord", "SourcePage"]
