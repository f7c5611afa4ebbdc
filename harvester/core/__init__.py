"""Core models and identifier helpers shared across the harvester."""

from .identifiers import normalize_arxiv_id, normalize_doi, normalize_pmid, normalize_title
from .models import CitationEdge, Paper, RawRecord, SourcePage

__all__ = [
    "CitationEdge",
    "Paper",
    "RawRecord",
    "SourcePage",
    "normalize_arxiv_id",
    "normalize_doi",
    "normalize_pmid",
    "normalize_title",
]
