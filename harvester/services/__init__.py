"""Harvesting and citation analysis services."""

from .citation_graph_service import CitationGraphService
from .citation_linker_service import CitationLinkerService, CitationLinkResult
from .dedup_service import FuzzyDeduplicator, fingerprint, similarity
from .harvest_service import HarvestCoordinator, HarvestState, HarvestSummary, RoundResult
from .relevance_service import RelevanceFilter

__all__ = [
    "CitationGraphService",
    "CitationLinkResult",
    "CitationLinkerService",
    "FuzzyDeduplicator",
    "HarvestCoordinator",
    "HarvestState",
    "HarvestSummary",
    "RelevanceFilter",
    "RoundResult",
    "fingerprint",
    "similarity",
]
