"""Round-based, resumable harvesting across several source adapters."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import requests

from harvester.checkpoint import CheckpointStore, HarvestCheckpoint
from harvester.config import HarvestConfig
from harvester.core.models import Paper, SourcePage
from harvester.exceptions import DatabaseError, RecordStoreWriteError
from harvester.providers.adapters import SourceAdapter, build_source_adapters
from harvester.providers.clients.links import HttpLinkValidator, LinkValidator
from harvester.services.dedup_service import FuzzyDeduplicator
from harvester.services.relevance_service import RelevanceFilter
from harvester.storage.base import RecordStore

logger = logging.getLogger(__name__)


class HarvestState(str, Enum):
    IDLE = "idle"
    RUNNING_ROUND = "running_round"
    CHECKPOINTING = "checkpointing"
    COMPLETED = "completed"
    STOPPED_SAFETY_LIMIT = "stopped_safety_limit"
    CANCELLED = "cancelled"


class _ImportOutcome(str, Enum):
    IMPORTED = "imported"
    EXISTING = "existing"
    FAILED = "failed"


@dataclass
class RoundResult:
    """Counts for a single harvest round."""

    round_number: int
    fetched: Dict[str, int] = field(default_factory=dict)
    has_more: Dict[str, bool] = field(default_factory=dict)
    collected: int = 0
    imported: int = 0
    duplicates: int = 0
    irrelevant: int = 0
    failed: int = 0

    @property
    def any_has_more(self) -> bool:
        return any(self.has_more.values())


@dataclass
class HarvestSummary:
    """Outcome of a run, produced however the run ended."""

    state: HarvestState
    rounds: int
    total_collected: int
    total_imported: int
    total_duplicates: int
    total_irrelevant: int
    total_failed: int
    source_offsets: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload


class HarvestCoordinator:
    """Drive harvest rounds until every source is exhausted.

    Each round fetches one page per adapter concurrently, then screens the
    results on the calling thread (normalize, relevance filter, fuzzy dedup),
    writes survivors to the record store through a small worker pool and
    persists the checkpoint. The deduplicator and checkpoint are owned by this
    instance and only touched from the coordinating thread.

    A :class:`~harvester.exceptions.CheckpointPersistError` ends the run. Use
    :meth:`summary` afterwards to report how far it got.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        store: RecordStore,
        checkpoint_store: CheckpointStore,
        *,
        relevance_filter: Optional[RelevanceFilter] = None,
        deduplicator: Optional[FuzzyDeduplicator] = None,
        link_validator: Optional[LinkValidator] = None,
        round_delay_s: float = 5.0,
        max_rounds: int = 1000,
        store_workers: int = 4,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not adapters:
            raise ValueError("At least one source adapter is required")
        names = [adapter.name for adapter in adapters]
        if len(set(names)) != len(names):
            raise ValueError(f"Adapter names must be unique: {names}")
        if max_rounds <= 0:
            raise ValueError("max_rounds must be positive")

        self.adapters = list(adapters)
        self.store = store
        self.checkpoint_store = checkpoint_store
        self.relevance_filter = (
            relevance_filter if relevance_filter is not None else RelevanceFilter()
        )
        self.deduplicator = deduplicator if deduplicator is not None else FuzzyDeduplicator()
        self.link_validator = link_validator
        self.round_delay_s = round_delay_s
        self.max_rounds = max_rounds
        self.store_workers = max(1, store_workers)
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._sleep = sleep

        self._state = HarvestState.IDLE
        self._rounds = 0
        self._checkpoint: Optional[HarvestCheckpoint] = None

    @classmethod
    def from_config(
        cls,
        config: HarvestConfig,
        store: RecordStore,
        *,
        session: Optional[requests.Session] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "HarvestCoordinator":
        adapters = build_source_adapters(config, session=session)
        link_validator = None
        if config.validate_links:
            link_validator = HttpLinkValidator(
                session=config.build_session(), timeout=config.request_timeout_s
            )
        return cls(
            adapters,
            store,
            CheckpointStore(config.checkpoint_path),
            relevance_filter=RelevanceFilter(
                config.indicator_terms, min_matches=config.min_indicator_matches
            ),
            deduplicator=FuzzyDeduplicator(
                threshold=config.similarity_threshold,
                fingerprint_length=config.fingerprint_length,
            ),
            link_validator=link_validator,
            round_delay_s=config.round_delay_s,
            max_rounds=config.max_rounds,
            store_workers=config.store_workers,
            cancel_event=cancel_event,
        )

    @property
    def state(self) -> HarvestState:
        return self._state

    @property
    def rounds(self) -> int:
        return self._rounds

    @property
    def checkpoint(self) -> HarvestCheckpoint:
        if self._checkpoint is None:
            self._checkpoint = self._resume()
        return self._checkpoint

    def cancel(self) -> None:
        """Ask the run to stop after the current round's checkpoint."""

        self.cancel_event.set()

    def run(self) -> HarvestSummary:
        checkpoint = self.checkpoint
        self._rounds = 0
        logger.info(
            "Starting harvest with sources %s", ", ".join(a.name for a in self.adapters)
        )

        while True:
            self._state = HarvestState.RUNNING_ROUND
            result = self.run_round()

            self._state = HarvestState.CHECKPOINTING
            self.checkpoint_store.save(checkpoint)

            if not result.any_has_more:
                self._state = HarvestState.COMPLETED
                break
            if self._rounds >= self.max_rounds:
                logger.warning(
                    "Reached maximum round limit (%s); stopping as a safety measure",
                    self.max_rounds,
                )
                self._state = HarvestState.STOPPED_SAFETY_LIMIT
                break
            if self.cancel_event.is_set():
                self._state = HarvestState.CANCELLED
                break

            logger.info("Waiting %.1f seconds before next round", self.round_delay_s)
            self._sleep(self.round_delay_s)
            if self.cancel_event.is_set():
                self._state = HarvestState.CANCELLED
                break

        summary = self.summary()
        logger.info(
            "Harvest %s after %s rounds: %s collected, %s imported, %s duplicates filtered",
            summary.state.value,
            summary.rounds,
            summary.total_collected,
            summary.total_imported,
            summary.total_duplicates,
        )
        return summary

    def run_round(self) -> RoundResult:
        """Execute one round without persisting the checkpoint."""

        checkpoint = self.checkpoint
        self._rounds += 1
        result = RoundResult(round_number=self._rounds)
        logger.info("Round %s", self._rounds)

        pages = self._fetch_all(checkpoint)
        survivors: List[Paper] = []
        for adapter in self.adapters:
            page = pages[adapter.name]
            result.fetched[adapter.name] = len(page.records)
            result.has_more[adapter.name] = page.has_more
            survivors.extend(self._screen(adapter, page, result))

        result.collected = len(survivors)
        if survivors:
            self._import(survivors, result)

        checkpoint.total_collected += result.collected
        checkpoint.total_imported += result.imported
        checkpoint.total_duplicates += result.duplicates
        checkpoint.total_irrelevant += result.irrelevant
        checkpoint.total_failed += result.failed
        for adapter in self.adapters:
            if result.has_more[adapter.name]:
                checkpoint.advance(adapter.name, adapter.page_size)

        logger.info(
            "Round %s: %s collected, %s imported, %s duplicates, %s irrelevant, %s failed",
            result.round_number,
            result.collected,
            result.imported,
            result.duplicates,
            result.irrelevant,
            result.failed,
        )
        return result

    def summary(self) -> HarvestSummary:
        """Report progress so far; totals are zero if no checkpoint could be loaded."""

        checkpoint = self._checkpoint if self._checkpoint is not None else HarvestCheckpoint()
        return HarvestSummary(
            state=self._state,
            rounds=self._rounds,
            total_collected=checkpoint.total_collected,
            total_imported=checkpoint.total_imported,
            total_duplicates=checkpoint.total_duplicates,
            total_irrelevant=checkpoint.total_irrelevant,
            total_failed=checkpoint.total_failed,
            source_offsets={
                adapter.name: checkpoint.offset_for(adapter.name) for adapter in self.adapters
            },
        )

    def _resume(self) -> HarvestCheckpoint:
        existing = self.checkpoint_store.load()
        if existing is None:
            logger.info("Starting fresh collection")
            return HarvestCheckpoint()

        self.deduplicator.seed(existing.processed_fingerprints)
        self.deduplicator.seed_titles(self.store.titles())
        logger.info(
            "Loaded %s known fingerprints for duplicate detection", len(self.deduplicator)
        )
        return existing

    def _fetch_all(self, checkpoint: HarvestCheckpoint) -> Dict[str, SourcePage]:
        with ThreadPoolExecutor(
            max_workers=len(self.adapters), thread_name_prefix="harvest-fetch"
        ) as pool:
            futures = {
                adapter.name: pool.submit(
                    adapter.fetch_page,
                    adapter.query,
                    checkpoint.offset_for(adapter.name),
                    adapter.page_size,
                )
                for adapter in self.adapters
            }
            return {name: future.result() for name, future in futures.items()}

    def _screen(
        self, adapter: SourceAdapter, page: SourcePage, result: RoundResult
    ) -> List[Paper]:
        """Normalize, filter and dedup one page.

        Fingerprints are recorded as soon as a paper passes dedup, before the
        store write. A paper whose write fails is therefore treated as a
        duplicate on later rounds and after a resume.
        """

        accepted: List[Paper] = []
        for raw in page.records:
            try:
                paper = adapter.normalize(raw)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("%s: skipping malformed record: %s", adapter.name, exc)
                result.failed += 1
                continue
            if paper is None:
                result.irrelevant += 1
                continue

            paper = self.relevance_filter.apply(paper)
            if not paper.has_performance_data:
                result.irrelevant += 1
                continue
            if self.deduplicator.is_duplicate(paper.title):
                result.duplicates += 1
                continue

            self.checkpoint.record_fingerprints([self.deduplicator.fingerprint(paper.title)])
            accepted.append(self._resolve_link(paper))
        return accepted

    def _resolve_link(self, paper: Paper) -> Paper:
        if self.link_validator is None or not paper.external_url:
            return paper
        resolved = self.link_validator.resolve(paper.external_url)
        if resolved is None:
            logger.debug("External URL unreachable for %r", paper.title[:50])
            return paper
        if resolved != paper.external_url:
            return replace(paper, external_url=resolved)
        return paper

    def _import(self, papers: List[Paper], result: RoundResult) -> None:
        with ThreadPoolExecutor(
            max_workers=self.store_workers, thread_name_prefix="harvest-store"
        ) as pool:
            outcomes = list(pool.map(self._import_one, papers))

        result.imported += outcomes.count(_ImportOutcome.IMPORTED)
        result.duplicates += outcomes.count(_ImportOutcome.EXISTING)
        result.failed += outcomes.count(_ImportOutcome.FAILED)

    def _import_one(self, paper: Paper) -> _ImportOutcome:
        try:
            if self.store.find_existing(**paper.identity()) is not None:
                return _ImportOutcome.EXISTING
            self.store.create(paper)
        except (RecordStoreWriteError, DatabaseError) as exc:
            logger.error("Import error for %r: %s", paper.title[:50], exc)
            return _ImportOutcome.FAILED
        return _ImportOutcome.IMPORTED
