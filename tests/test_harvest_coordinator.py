import threading
from typing import Dict, List, Optional, Tuple

import pytest
import requests

from harvester.checkpoint import CheckpointStore, HarvestCheckpoint
from harvester.config import HarvestConfig
from harvester.core.models import Paper, RawRecord, SourcePage
from harvester.exceptions import CheckpointPersistError, RecordStoreWriteError
from harvester.providers.adapters import OpenAlexAdapter, SourceAdapter
from harvester.providers.clients import OpenAlexClient
from harvester.services.dedup_service import FuzzyDeduplicator
from harvester.services.harvest_service import HarvestCoordinator, HarvestState
from harvester.storage.memory import InMemoryRecordStore

RELEVANT = "Peak power density of 420 mW/m2 and 85% coulombic efficiency"

Pages = Dict[int, Tuple[List[RawRecord], bool]]


def record(title: str, abstract: str = RELEVANT, **extra) -> RawRecord:
    return {"title": title, "abstract": abstract, **extra}


class StubAdapter(SourceAdapter):
    source_tag = "stub_comprehensive"

    def __init__(self, name: str, pages: Pages, page_size: int) -> None:
        super().__init__(query="microbial fuel cell", page_size=page_size)
        self.name = name
        self.pages = pages
        self.requested: List[int] = []

    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        self.requested.append(offset)
        records, has_more = self.pages.get(offset, ([], False))
        return SourcePage(records=list(records), has_more=has_more)

    def normalize(self, raw: RawRecord) -> Optional[Paper]:
        if not raw["title"]:
            return None
        return Paper(
            title=raw["title"],
            source=self.source_tag,
            abstract=raw.get("abstract"),
            doi=raw.get("doi"),
            external_url=raw.get("url"),
        )


class AlwaysMoreAdapter(StubAdapter):
    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        self.requested.append(offset)
        return SourcePage(records=[record(f"Stack configuration number {offset}")], has_more=True)


def _pages_a() -> Pages:
    return {
        0: ([record("Stacked microbial fuel cells"), record("Air cathode optimisation")], True),
        2: ([record("Graphite brush anodes"), record("stacked microbial fuel-cells")], True),
        4: ([record("Sediment microbial fuel cells for sensors")], False),
    }


def _pages_b() -> Pages:
    return {
        0: ([record("Ceramic separators in single chamber reactors")], True),
        1: ([record("Air-cathode optimisation!")], False),
    }


def _adapters() -> List[SourceAdapter]:
    return [StubAdapter("alpha", _pages_a(), 2), StubAdapter("beta", _pages_b(), 1)]


def _coordinator(tmp_path, store=None, adapters=None, **kwargs) -> HarvestCoordinator:
    kwargs.setdefault("sleep", lambda _seconds: None)
    return HarvestCoordinator(
        adapters or _adapters(),
        store if store is not None else InMemoryRecordStore(),
        kwargs.pop("checkpoint_store", None) or CheckpointStore(tmp_path / "checkpoint.json"),
        **kwargs,
    )


def test_run_collects_until_every_source_is_exhausted(tmp_path):
    store = InMemoryRecordStore()
    coordinator = _coordinator(tmp_path, store=store)

    summary = coordinator.run()

    assert summary.state is HarvestState.COMPLETED
    assert summary.rounds == 3
    assert summary.total_collected == 5
    assert summary.total_imported == 5
    # One cross-page duplicate plus the exhausted beta page seen twice.
    assert summary.total_duplicates == 3
    assert summary.source_offsets == {"alpha": 4, "beta": 1}
    assert sorted(store.titles()) == [
        "Air cathode optimisation",
        "Ceramic separators in single chamber reactors",
        "Graphite brush anodes",
        "Sediment microbial fuel cells for sensors",
        "Stacked microbial fuel cells",
    ]
    assert coordinator.state is HarvestState.COMPLETED


def test_exhausted_source_is_refetched_at_the_same_offset(tmp_path):
    adapters = _adapters()

    _coordinator(tmp_path, adapters=adapters).run()

    assert adapters[0].requested == [0, 2, 4]
    assert adapters[1].requested == [0, 1, 1]


def test_checkpoint_is_written_every_round(tmp_path):
    checkpoint_store = CheckpointStore(tmp_path / "checkpoint.json")
    coordinator = _coordinator(tmp_path, checkpoint_store=checkpoint_store, max_rounds=1)

    coordinator.run()
    saved = checkpoint_store.load()

    assert saved is not None
    assert saved.source_offsets == {"alpha": 2, "beta": 1}
    assert saved.total_imported == 3
    assert "stackedmicrobialfuelcells" in saved.processed_fingerprints


def test_resume_yields_the_same_totals_as_an_uninterrupted_run(tmp_path):
    uninterrupted = _coordinator(tmp_path / "full").run()

    store = InMemoryRecordStore()
    checkpoint_store = CheckpointStore(tmp_path / "resumed" / "checkpoint.json")
    first = _coordinator(
        tmp_path, store=store, checkpoint_store=checkpoint_store, max_rounds=1
    ).run()
    second = _coordinator(tmp_path, store=store, checkpoint_store=checkpoint_store).run()

    assert first.state is HarvestState.STOPPED_SAFETY_LIMIT
    assert second.state is HarvestState.COMPLETED
    assert second.rounds == 2
    assert second.total_imported == uninterrupted.total_imported
    assert second.total_collected == uninterrupted.total_collected
    assert second.source_offsets == uninterrupted.source_offsets
    assert len(store) == uninterrupted.total_imported


def test_resume_recognises_titles_already_in_the_store(tmp_path):
    store = InMemoryRecordStore()
    store.create(Paper(title="Graphite brush anodes", source="manual"))
    checkpoint_store = CheckpointStore(tmp_path / "checkpoint.json")
    checkpoint = HarvestCheckpoint(source_offsets={"alpha": 2, "beta": 1})
    checkpoint_store.save(checkpoint)
    adapters = _adapters()

    summary = _coordinator(
        tmp_path, store=store, checkpoint_store=checkpoint_store, adapters=adapters
    ).run()

    assert adapters[0].requested[0] == 2
    assert [paper.title for paper in store.all()].count("Graphite brush anodes") == 1
    assert summary.total_collected == 3
    assert summary.total_imported == 3


def test_safety_cap_stops_exactly_at_max_rounds(tmp_path):
    adapter = AlwaysMoreAdapter("endless", {}, 10)
    sleeps: List[float] = []

    coordinator = _coordinator(
        tmp_path,
        adapters=[adapter],
        max_rounds=3,
        round_delay_s=5.0,
        sleep=sleeps.append,
    )
    summary = coordinator.run()

    assert summary.state is HarvestState.STOPPED_SAFETY_LIMIT
    assert summary.rounds == 3
    assert adapter.requested == [0, 10, 20]
    assert summary.source_offsets == {"endless": 30}
    assert sleeps == [5.0, 5.0]


def test_cancellation_is_honoured_after_checkpointing(tmp_path):
    cancel = threading.Event()

    class CancellingAdapter(AlwaysMoreAdapter):
        def _fetch(self, query, offset, page_size):
            cancel.set()
            return super()._fetch(query, offset, page_size)

    sleeps: List[float] = []
    checkpoint_store = CheckpointStore(tmp_path / "checkpoint.json")
    summary = _coordinator(
        tmp_path,
        adapters=[CancellingAdapter("endless", {}, 10)],
        checkpoint_store=checkpoint_store,
        cancel_event=cancel,
        sleep=sleeps.append,
    ).run()

    assert summary.state is HarvestState.CANCELLED
    assert summary.rounds == 1
    assert sleeps == []
    assert checkpoint_store.load().offset_for("endless") == 10


def test_cancel_during_sleep_stops_before_next_round(tmp_path):
    adapter = AlwaysMoreAdapter("endless", {}, 10)
    coordinator = _coordinator(tmp_path, adapters=[adapter])
    coordinator._sleep = lambda _seconds: coordinator.cancel()

    summary = coordinator.run()

    assert summary.state is HarvestState.CANCELLED
    assert adapter.requested == [0]


def test_store_write_failure_is_counted_and_does_not_abort(tmp_path):
    class FlakyStore(InMemoryRecordStore):
        def create(self, paper):
            if paper.title == "Air cathode optimisation":
                raise RecordStoreWriteError("connection reset")
            return super().create(paper)

    summary = _coordinator(tmp_path, store=FlakyStore()).run()

    assert summary.state is HarvestState.COMPLETED
    assert summary.total_failed == 1
    assert summary.total_imported == 4
    assert summary.total_collected == 5


def test_checkpoint_failure_is_fatal_and_summary_remains_available(tmp_path):
    class BrokenCheckpointStore(CheckpointStore):
        def save(self, checkpoint):
            raise CheckpointPersistError("read-only file system")

    coordinator = _coordinator(
        tmp_path, checkpoint_store=BrokenCheckpointStore(tmp_path / "checkpoint.json")
    )

    with pytest.raises(CheckpointPersistError):
        coordinator.run()

    assert coordinator.state is HarvestState.CHECKPOINTING
    assert coordinator.summary().rounds == 1
    assert coordinator.summary().total_imported == 3


def test_irrelevant_untitled_and_malformed_records_are_counted(tmp_path):
    pages: Pages = {
        0: (
            [
                record("Biofilm imaging", abstract="increased by 30%"),
                record(""),
                {"abstract": RELEVANT},
                record("Stacked microbial fuel cells"),
            ],
            False,
        )
    }

    summary = _coordinator(tmp_path, adapters=[StubAdapter("alpha", pages, 10)]).run()

    assert summary.total_irrelevant == 2
    assert summary.total_failed == 1
    assert summary.total_imported == 1


def test_identity_match_in_store_counts_as_duplicate(tmp_path):
    store = InMemoryRecordStore()
    store.create(Paper(title="A different title", source="manual", doi="10.1000/mfc"))
    pages: Pages = {0: ([record("Stacked microbial fuel cells", doi="10.1000/MFC")], False)}

    summary = _coordinator(
        tmp_path, store=store, adapters=[StubAdapter("alpha", pages, 10)]
    ).run()

    assert summary.total_collected == 1
    assert summary.total_imported == 0
    assert summary.total_duplicates == 1
    assert len(store) == 1


def test_link_validator_replaces_resolved_urls(tmp_path):
    class RedirectingValidator:
        def resolve(self, url):
            return url.replace("http://", "https://")

    store = InMemoryRecordStore()
    pages: Pages = {
        0: ([record("Stacked microbial fuel cells", url="http://example.org/mfc")], False)
    }

    _coordinator(
        tmp_path,
        store=store,
        adapters=[StubAdapter("alpha", pages, 10)],
        link_validator=RedirectingValidator(),
    ).run()

    assert [paper.external_url for paper in store.all()] == ["https://example.org/mfc"]


def test_adapter_names_must_be_unique(tmp_path):
    with pytest.raises(ValueError):
        _coordinator(
            tmp_path,
            adapters=[StubAdapter("alpha", {}, 1), StubAdapter("alpha", {}, 1)],
        )


def test_from_config_wires_configured_sources(tmp_path):
    config = HarvestConfig(
        checkpoint_path=tmp_path / "checkpoint.json",
        sources=["arxiv", "openalex"],
        max_rounds=9,
        similarity_threshold=0.9,
        fingerprint_length=40,
        min_indicator_matches=3,
    )

    coordinator = HarvestCoordinator.from_config(config, InMemoryRecordStore())

    assert [adapter.name for adapter in coordinator.adapters] == ["arxiv", "openalex"]
    assert coordinator.max_rounds == 9
    assert coordinator.deduplicator.threshold == 0.9
    assert coordinator.deduplicator.fingerprint_length == 40
    assert coordinator.relevance_filter.min_matches == 3
    assert coordinator.link_validator is None
    assert coordinator.state is HarvestState.IDLE


def test_injected_empty_deduplicator_is_kept(tmp_path):
    deduplicator = FuzzyDeduplicator(threshold=0.95, fingerprint_length=30)

    coordinator = _coordinator(tmp_path, deduplicator=deduplicator)

    assert len(deduplicator) == 0
    assert coordinator.deduplicator is deduplicator


class CannedOpenAlexAdapter(OpenAlexAdapter):
    def __init__(self, records: List[RawRecord]) -> None:
        super().__init__(
            OpenAlexClient(session=requests.Session()), query="microbial fuel cell", page_size=10
        )
        self.records = records

    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        return SourcePage(records=list(self.records), has_more=False)


def test_record_with_wrongly_shaped_nested_fields_is_counted_as_failed(tmp_path):
    abstract_index = {word: [position] for position, word in enumerate(RELEVANT.split())}
    records = [
        {
            "display_name": "Ceramic separators in single chamber reactors",
            "ids": ["not-a-mapping"],
            "abstract_inverted_index": abstract_index,
        },
        {
            "display_name": "Stacked microbial fuel cells",
            "ids": {"pmid": "https://pubmed.ncbi.nlm.nih.gov/123456"},
            "abstract_inverted_index": abstract_index,
        },
    ]
    checkpoint_path = tmp_path / "checkpoint.json"

    summary = _coordinator(
        tmp_path,
        adapters=[CannedOpenAlexAdapter(records)],
        checkpoint_store=CheckpointStore(checkpoint_path),
    ).run()

    assert summary.state is HarvestState.COMPLETED
    assert summary.total_failed == 1
    assert summary.total_imported == 1
    assert checkpoint_path.exists()
