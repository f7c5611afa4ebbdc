"""Record store interface consumed by the harvester and the citation services."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Set, Tuple, runtime_checkable

from harvester.core.models import Paper


@runtime_checkable
class RecordStore(Protocol):
    """Durable, identity-keyed paper storage with citation relations.

    ``create`` raises :class:`~harvester.exceptions.RecordStoreWriteError` when a
    single record cannot be written. ``add_citation`` is idempotent and returns
    whether a new edge was stored.
    """

    def find_existing(
        self,
        *,
        doi: Optional[str] = None,
        pubmed_id: Optional[str] = None,
        arxiv_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Optional[Paper]: ...

    def create(self, paper: Paper) -> Paper: ...

    def get(self, paper_id: str) -> Optional[Paper]: ...

    def query_citation_edges(self, paper_id: str) -> Tuple[Set[str], Set[str]]:
        """Return ``(outgoing, incoming)``: ids ``paper_id`` cites and ids citing it."""
        ...

    def add_citation(self, citing_id: str, cited_id: str) -> bool: ...

    def titles(self) -> Iterable[str]: ...
