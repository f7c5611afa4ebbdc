"""Turn parsed references into stored citation edges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from harvester.config import SelfCitationPolicy
from harvester.core.models import CitationEdge
from harvester.exceptions import PaperNotFoundError, SelfCitationError
from harvester.parsing.references import Reference
from harvester.providers.clients.links import LinkValidator
from harvester.storage.base import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class CitationLinkResult:
    paper_id: str
    title: str
    verified: List[Reference] = field(default_factory=list)
    unverified: List[Reference] = field(default_factory=list)
    edges: List[CitationEdge] = field(default_factory=list)
    cited_by_count: int = 0
    network_size: int = 0

    @property
    def edges_added(self) -> int:
        return len(self.edges)


class CitationLinkerService:
    """Record citation edges for references that resolve to stored papers.

    A reference is verified when its DOI matches a stored paper (an edge is then
    added unless it already exists) or, failing that, when the optional link
    validator can reach its URL.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        policy: SelfCitationPolicy = SelfCitationPolicy.ALLOW,
        link_validator: Optional[LinkValidator] = None,
    ) -> None:
        self.store = store
        self.policy = SelfCitationPolicy(policy)
        self.link_validator = link_validator

    def add_citation(self, citing_id: str, cited_id: str) -> bool:
        """Store ``citing_id -> cited_id``; returns whether a new edge was created."""

        if CitationEdge(citing_id, cited_id).is_self_citation:
            if self.policy is SelfCitationPolicy.SKIP:
                logger.info("Skipping self-citation for %s", citing_id)
                return False
            if self.policy is SelfCitationPolicy.ERROR:
                raise SelfCitationError(f"Paper {citing_id} cannot cite itself")
        return self.store.add_citation(citing_id, cited_id)

    def link_references(
        self, paper_id: str, references: Iterable[Reference]
    ) -> CitationLinkResult:
        paper = self.store.get(paper_id)
        if paper is None:
            raise PaperNotFoundError(paper_id)

        outgoing, incoming = self.store.query_citation_edges(paper_id)
        result = CitationLinkResult(
            paper_id=paper_id,
            title=paper.title,
            cited_by_count=len(incoming),
            network_size=len(outgoing) + len(incoming),
        )

        for reference in references:
            verified = False
            if reference.doi:
                cited = self.store.find_existing(doi=reference.doi)
                if cited is not None and cited.id is not None:
                    if self.add_citation(paper_id, cited.id):
                        result.edges.append(CitationEdge(paper_id, cited.id))
                    verified = True

            if not verified and reference.url and self.link_validator is not None:
                verified = self.link_validator.resolve(reference.url) is not None

            if verified:
                result.verified.append(reference)
            else:
                result.unverified.append(reference)

        logger.info(
            "Linked %s references for %s: %s verified, %s new edges",
            len(result.verified) + len(result.unverified),
            paper_id,
            len(result.verified),
            result.edges_added,
        )
        return result
