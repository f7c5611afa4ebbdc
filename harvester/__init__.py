"""Resumable multi-source literature harvesting with citation graph analysis."""

from __future__ import annotations

from .checkpoint import CheckpointStore, HarvestCheckpoint
from .config import HarvestConfig, SelfCitationPolicy
from .core.models import CitationEdge, Paper, SourcePage
from .exceptions import (
    AdapterFetchError,
    CheckpointPersistError,
    ConfigurationError,
    HarvesterError,
    PaperNotFoundError,
    RecordStoreWriteError,
)
from .services import (
    CitationGraphService,
    CitationLinkerService,
    FuzzyDeduplicator,
    HarvestCoordinator,
    HarvestState,
    HarvestSummary,
    RelevanceFilter,
)
from .storage import InMemoryRecordStore, RecordStore

__version__ = "0.1.0"

__all__ = [
    "AdapterFetchError",
    "CheckpointPersistError",
    "CheckpointStore",
    "CitationEdge",
    "CitationGraphService",
    "CitationLinkerService",
    "ConfigurationError",
    "FuzzyDeduplicator",
    "HarvestCheckpoint",
    "HarvestConfig",
    "HarvestCoordinator",
    "HarvestState",
    "HarvestSummary",
    "HarvesterError",
    "InMemoryRecordStore",
    "Paper",
    "PaperNotFoundError",
    "RecordStore",
    "RecordStoreWriteError",
    "RelevanceFilter",
    "SelfCitationPolicy",
    "SourcePage",
]
