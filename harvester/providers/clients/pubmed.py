"""NCBI E-utilities client for PubMed search and record retrieval."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseHttpClient, UpstreamError, expect_object

logger = logging.getLogger(__name__)

_MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None:
        return None
    # ``itertext`` flattens inline markup such as <i> or <sub> inside titles.
    text = " ".join("".join(element.itertext()).split())
    return text or None


def _month(value: Optional[str]) -> int:
    if not value:
        return 1
    if value.isdigit():
        return min(max(int(value), 1), 12)
    return _MONTHS.get(value[:3].lower(), 1)


class PubMedClient(BaseHttpClient):
    """Two-step PubMed access: ``esearch`` for ids, ``efetch`` for records."""

    BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"

    def search_ids(self, query: str, *, retmax: int, retstart: int = 0) -> Tuple[List[str], int]:
        params = {
            "db": "pubmed",
            "term": query,
            "retstart": retstart,
            "retmax": retmax,
            "retmode": "json",
        }
        payload = self._get_json_object("/esearch.fcgi", params=params)
        result = expect_object(payload.get("esearchresult") or {}, "PubMed esearch result")
        ids = [str(pmid) for pmid in result.get("idlist") or []]
        try:
            count = int(result.get("count") or 0)
        except (TypeError, ValueError):
            count = 0
        return ids, count

    def fetch_records(self, pmids: List[str]) -> List[Dict[str, Any]]:
        if not pmids:
            return []
        params = {"db": "pubmed", "id": ",".join(pmids), "retmode": "xml"}
        xml_text = self._get_text(
            "/efetch.fcgi", params=params, headers={"Accept": "application/xml"}
        )
        return self.parse_articles(xml_text)

    def parse_articles(self, xml_text: str) -> List[Dict[str, Any]]:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as exc:
            raise UpstreamError(f"Malformed PubMed XML: {exc}") from exc

        records: List[Dict[str, Any]] = []
        for article in root.iter("PubmedArticle"):
            citation = article.find("MedlineCitation")
            if citation is None:
                continue
            records.append(self._parse_citation(article, citation))
        return records

    def _parse_citation(self, article: ET.Element, citation: ET.Element) -> Dict[str, Any]:
        info = citation.find("Article")
        abstract_parts = [
            _text(part) for part in citation.findall("Article/Abstract/AbstractText")
        ]
        authors: List[str] = []
        for author in citation.findall("Article/AuthorList/Author"):
            last = _text(author.find("LastName"))
            fore = _text(author.find("ForeName"))
            collective = _text(author.find("CollectiveName"))
            name = " ".join(part for part in (fore, last) if part) or collective
            if name:
                authors.append(name)

        doi = None
        for article_id in article.findall("PubmedData/ArticleIdList/ArticleId"):
            if article_id.get("IdType") == "doi":
                doi = _text(article_id)
                break

        keywords = [
            keyword
            for keyword in (_text(node) for node in citation.findall("KeywordList/Keyword"))
            if keyword
        ]

        return {
            "pmid": _text(citation.find("PMID")),
            "title": _text(info.find("ArticleTitle")) if info is not None else None,
            "abstract": " ".join(part for part in abstract_parts if part) or None,
            "journal": _text(citation.find("Article/Journal/Title")),
            "authors": authors,
            "doi": doi,
            "keywords": keywords,
            "pub_date": self._parse_pub_date(citation.find("Article/Journal/JournalIssue/PubDate")),
        }

    def _parse_pub_date(self, node: Optional[ET.Element]) -> Optional[Tuple[int, int, int]]:
        if node is None:
            return None
        year = _text(node.find("Year"))
        if not year or not year.isdigit():
            medline = _text(node.find("MedlineDate"))
            if medline and medline[:4].isdigit():
                return int(medline[:4]), 1, 1
            return None
        day = _text(node.find("Day"))
        return int(year), _month(_text(node.find("Month"))), int(day) if day and day.isdigit() else 1
