"""Source adapters: one paginated catalog each, normalized into :class:`Paper`."""

from __future__ import annotations

import html
import logging
import re
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Iterable, List, Optional

import requests

from harvester.config import HarvestConfig
from harvester.core.identifiers import (
    normalize_arxiv_id,
    normalize_doi,
    normalize_pmid,
    normalize_title,
)
from harvester.core.models import Paper, RawRecord, SourcePage
from harvester.exceptions import AdapterFetchError
from harvester.providers.clients.arxiv import ArxivClient
from harvester.providers.clients.base import ClientError
from harvester.providers.clients.crossref import CrossrefClient
from harvester.providers.clients.openalex import OpenAlexClient, reconstruct_abstract
from harvester.providers.clients.pubmed import PubMedClient

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"<[^>]+>")


def clean_markup(text: Optional[str]) -> Optional[str]:
    """Strip XML/JATS tags, unescape entities and collapse whitespace."""

    if not text:
        return None
    stripped = html.unescape(_TAG_PATTERN.sub(" ", text))
    collapsed = " ".join(stripped.split())
    return collapsed or None


def _safe_date(year: Any, month: Any = 1, day: Any = 1) -> Optional[date]:
    try:
        return date(int(year), int(month or 1), int(day or 1))
    except (TypeError, ValueError):
        return None


def _iso_date(value: Optional[str]) -> Optional[date]:
    if not value or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class SourceAdapter(ABC):
    """Stateless translation between one external catalog and :class:`Paper`.

    :meth:`fetch_page` never raises for network or parse problems: the failure
    is logged and reported as an empty, exhausted page so one catalog outage
    cannot abort a harvest round.
    """

    name: str
    source_tag: str

    def __init__(self, *, query: str, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.query = query
        self.page_size = page_size

    def fetch_page(self, query: str, offset: int, page_size: int) -> SourcePage:
        try:
            return self.fetch_page_or_raise(query, offset, page_size)
        except AdapterFetchError as exc:
            logger.error("Fetch failed for %s at offset %s: %s", self.name, offset, exc)
            return SourcePage(records=[], has_more=False)

    def fetch_page_or_raise(self, query: str, offset: int, page_size: int) -> SourcePage:
        if offset < 0:
            raise ValueError("offset must be non-negative")
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if not query or not query.strip():
            raise ValueError("query must be non-empty")

        logger.info("%s: fetching offset %s", self.name, offset)
        try:
            page = self._fetch(query, offset, page_size)
        except ClientError as exc:
            raise AdapterFetchError(self.name, str(exc)) from exc
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise AdapterFetchError(self.name, f"unexpected payload: {exc}") from exc

        logger.info(
            "%s: got %s records (has_more=%s)", self.name, len(page.records), page.has_more
        )
        return page

    @abstractmethod
    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        """Fetch one raw page; client errors propagate to :meth:`fetch_page_or_raise`."""

    @abstractmethod
    def normalize(self, raw: RawRecord) -> Optional[Paper]:
        """Convert one raw record, returning ``None`` when it has no usable title."""


class CrossrefAdapter(SourceAdapter):
    name = "crossref"
    source_tag = "crossref_comprehensive"

    def __init__(self, client: CrossrefClient, *, query: str, page_size: int) -> None:
        super().__init__(query=query, page_size=page_size)
        self.client = client

    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        items, total = self.client.search_works(
            query, rows=page_size, offset=offset, filters={"has-abstract": "true"}
        )
        return SourcePage(records=items, has_more=offset + len(items) < total)

    def normalize(self, raw: RawRecord) -> Optional[Paper]:
        titles = raw.get("title") or []
        title = normalize_title(titles[0] if isinstance(titles, list) and titles else None)
        if not title:
            return None

        authors: List[str] = []
        for author in raw.get("author") or []:
            if not isinstance(author, dict):
                continue
            name = " ".join(part for part in (author.get("given"), author.get("family")) if part)
            if name:
                authors.append(name)

        containers = raw.get("container-title") or []
        return Paper(
            title=title,
            source=self.source_tag,
            doi=normalize_doi(raw.get("DOI")),
            authors=authors,
            abstract=clean_markup(raw.get("abstract")),
            journal=containers[0] if containers else None,
            publication_date=self._published(raw),
            external_url=raw.get("URL"),
            keywords=[subject for subject in raw.get("subject") or [] if subject],
        )

    def _published(self, raw: RawRecord) -> Optional[date]:
        for key in ("published", "issued", "published-print", "published-online"):
            parts = (raw.get(key) or {}).get("date-parts") or []
            if parts and parts[0] and parts[0][0]:
                first = list(parts[0]) + [1, 1]
                return _safe_date(first[0], first[1], first[2])
        return None


class PubMedAdapter(SourceAdapter):
    name = "pubmed"
    source_tag = "pubmed_comprehensive"

    def __init__(self, client: PubMedClient, *, query: str, page_size: int) -> None:
        super().__init__(query=query, page_size=page_size)
        self.client = client

    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        ids, count = self.client.search_ids(query, retmax=page_size, retstart=offset)
        has_more = offset + len(ids) < count
        if not ids:
            return SourcePage(records=[], has_more=has_more)
        return SourcePage(records=self.client.fetch_records(ids), has_more=has_more)

    def normalize(self, raw: RawRecord) -> Optional[Paper]:
        title = normalize_title(clean_markup(raw.get("title")))
        if not title:
            return None
        pmid = normalize_pmid(raw.get("pmid"))
        pub_date = raw.get("pub_date")
        return Paper(
            title=title,
            source=self.source_tag,
            pubmed_id=pmid,
            doi=normalize_doi(raw.get("doi")),
            authors=raw.get("authors") or [],
            abstract=clean_markup(raw.get("abstract")),
            journal=raw.get("journal"),
            publication_date=_safe_date(*pub_date) if pub_date else None,
            external_url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/" if pmid else None,
            keywords=raw.get("keywords") or [],
        )


class ArxivAdapter(SourceAdapter):
    """arXiv reports no usable total, so a full page is taken to mean more remain."""

    name = "arxiv"
    source_tag = "arxiv_comprehensive"

    def __init__(self, client: ArxivClient, *, query: str, page_size: int) -> None:
        super().__init__(query=query, page_size=page_size)
        self.client = client

    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        entries = self.client.search(query, start=offset, max_results=page_size)
        return SourcePage(records=entries, has_more=len(entries) == page_size)

    def normalize(self, raw: RawRecord) -> Optional[Paper]:
        title = normalize_title(raw.get("title"))
        if not title:
            return None
        arxiv_id = normalize_arxiv_id(raw.get("arxiv_id"))
        return Paper(
            title=title,
            source=self.source_tag,
            arxiv_id=arxiv_id,
            doi=normalize_doi(raw.get("doi")),
            authors=raw.get("authors") or [],
            abstract=clean_markup(raw.get("summary")),
            journal=raw.get("journal_ref"),
            publication_date=_iso_date(raw.get("published")),
            external_url=f"https://arxiv.org/abs/{arxiv_id}" if arxiv_id else None,
            keywords=raw.get("categories") or [],
        )


class OpenAlexAdapter(SourceAdapter):
    name = "openalex"
    source_tag = "openalex_comprehensive"

    def __init__(
        self,
        client: OpenAlexClient,
        *,
        query: str,
        page_size: int,
        mailto: Optional[str] = None,
    ) -> None:
        super().__init__(query=query, page_size=page_size)
        self.client = client
        self.mailto = mailto

    def _fetch(self, query: str, offset: int, page_size: int) -> SourcePage:
        # Offsets always advance by whole pages, so they map onto page numbers.
        page = offset // page_size + 1
        items, total = self.client.search_works(
            query, per_page=page_size, page=page, mailto=self.mailto
        )
        return SourcePage(records=items, has_more=offset + len(items) < total)

    def normalize(self, raw: RawRecord) -> Optional[Paper]:
        title = normalize_title(raw.get("display_name") or raw.get("title"))
        if not title:
            return None

        ids = raw.get("ids") or {}
        inverted = raw.get("abstract_inverted_index")
        abstract = reconstruct_abstract(inverted) if isinstance(inverted, dict) else None
        source = ((raw.get("primary_location") or {}).get("source")) or {}
        authors = [
            (authorship.get("author") or {}).get("display_name")
            for authorship in raw.get("authorships") or []
        ]
        keywords: Iterable[Any] = [
            concept.get("display_name") for concept in raw.get("keywords") or []
        ]
        return Paper(
            title=title,
            source=self.source_tag,
            doi=normalize_doi(raw.get("doi")),
            pubmed_id=normalize_pmid((ids.get("pmid") or "").rsplit("/", 1)[-1] or None),
            authors=[name for name in authors if name],
            abstract=abstract,
            journal=source.get("display_name"),
            publication_date=_iso_date(raw.get("publication_date")),
            external_url=raw.get("doi") or raw.get("id"),
            keywords=[keyword for keyword in keywords if keyword],
        )


def build_source_adapters(
    config: HarvestConfig, *, session: Optional[requests.Session] = None
) -> List[SourceAdapter]:
    """Instantiate the enabled adapters in configured order."""

    config.validate_sources()
    session = config.build_session(session)
    timeout = config.request_timeout_s

    adapters: List[SourceAdapter] = []
    for source in config.sources:
        query = config.queries[source]
        page_size = config.page_size_for(source)
        if source == "crossref":
            adapters.append(
                CrossrefAdapter(
                    CrossrefClient(session=session, timeout=timeout),
                    query=query,
                    page_size=page_size,
                )
            )
        elif source == "pubmed":
            adapters.append(
                PubMedAdapter(
                    PubMedClient(session=session, timeout=timeout),
                    query=query,
                    page_size=page_size,
                )
            )
        elif source == "arxiv":
            adapters.append(
                ArxivAdapter(
                    ArxivClient(session=session, timeout=timeout),
                    query=query,
                    page_size=page_size,
                )
            )
        elif source == "openalex":
            adapters.append(
                OpenAlexAdapter(
                    OpenAlexClient(session=session, timeout=timeout),
                    query=query,
                    page_size=page_size,
                    mailto=config.contact_email,
                )
            )
    return adapters


__all__ = [
    "ArxivAdapter",
    "CrossrefAdapter",
    "OpenAlexAdapter",
    "PubMedAdapter",
    "SourceAdapter",
    "build_source_adapters",
    "clean_markup",
]
