"""Thread-safe in-memory record store."""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from harvester.core.identifiers import normalize_arxiv_id, normalize_doi, normalize_pmid
from harvester.core.models import Paper
from harvester.exceptions import PaperNotFoundError, RecordStoreWriteError


class InMemoryRecordStore:
    """Dictionary-backed :class:`~harvester.storage.base.RecordStore`.

    Used for dry runs and tests. Identity lookups go through secondary indexes
    keyed on normalized DOI, PubMed id, arXiv id and exact title.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._papers: Dict[str, Paper] = {}
        self._by_doi: Dict[str, str] = {}
        self._by_pmid: Dict[str, str] = {}
        self._by_arxiv: Dict[str, str] = {}
        self._by_title: Dict[str, str] = {}
        self._outgoing: Dict[str, Set[str]] = defaultdict(set)
        self._incoming: Dict[str, Set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._papers)

    def find_existing(
        self,
        *,
        doi: Optional[str] = None,
        pubmed_id: Optional[str] = None,
        arxiv_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Optional[Paper]:
        lookups = (
            (self._by_doi, normalize_doi(doi)),
            (self._by_pmid, normalize_pmid(pubmed_id)),
            (self._by_arxiv, normalize_arxiv_id(arxiv_id)),
            (self._by_title, title),
        )
        with self._lock:
            for index, key in lookups:
                if key and key in index:
                    return self._papers[index[key]]
        return None

    def create(self, paper: Paper) -> Paper:
        with self._lock:
            for index, key in self._identity_keys(paper):
                if key in index:
                    raise RecordStoreWriteError(
                        f"Identity conflict for {paper.title[:50]!r} on {key!r}"
                    )
            stored = replace(paper, id=paper.id or uuid.uuid4().hex)
            if stored.id in self._papers:
                raise RecordStoreWriteError(f"Paper id {stored.id} already exists")
            self._papers[stored.id] = stored
            for index, key in self._identity_keys(stored):
                index[key] = stored.id
        return stored

    def get(self, paper_id: str) -> Optional[Paper]:
        with self._lock:
            return self._papers.get(paper_id)

    def all(self) -> List[Paper]:
        with self._lock:
            return list(self._papers.values())

    def titles(self) -> Iterable[str]:
        with self._lock:
            return [paper.title for paper in self._papers.values()]

    def add_citation(self, citing_id: str, cited_id: str) -> bool:
        with self._lock:
            for paper_id in (citing_id, cited_id):
                if paper_id not in self._papers:
                    raise PaperNotFoundError(paper_id)
            if cited_id in self._outgoing[citing_id]:
                return False
            self._outgoing[citing_id].add(cited_id)
            self._incoming[cited_id].add(citing_id)
            return True

    def query_citation_edges(self, paper_id: str) -> Tuple[Set[str], Set[str]]:
        with self._lock:
            return set(self._outgoing.get(paper_id, ())), set(self._incoming.get(paper_id, ()))

    def _identity_keys(self, paper: Paper) -> List[Tuple[Dict[str, str], str]]:
        candidates = (
            (self._by_doi, normalize_doi(paper.doi)),
            (self._by_pmid, normalize_pmid(paper.pubmed_id)),
            (self._by_arxiv, normalize_arxiv_id(paper.arxiv_id)),
            (self._by_title, paper.title),
        )
        return [(index, key) for index, key in candidates if key]
