"""arXiv Atom API client."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Dict, List

from .base import BaseHttpClient, UpstreamError

_NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
}


def _clean(value: str | None) -> str:
    return " ".join((value or "").split())


class ArxivClient(BaseHttpClient):
    """Offset-paginated query against ``export.arxiv.org``.

    The feed is consumed for its entries only; arXiv's reported total is not
    relied upon, so callers infer further pages from a full-size result.
    """

    BASE_URL = "http://export.arxiv.org/api"

    def search(self, query: str, *, start: int = 0, max_results: int = 50) -> List[Dict[str, Any]]:
        params = {"search_query": query, "start": start, "max_results": max_results}
        xml_text = self._get_text(
            "/query", params=params, headers={"Accept": "application/atom+xml"}
        )
        return self.parse_feed(xml_text)

    def parse_feed(self, xml_text: str) -> List[Dict[str, Any]]:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as exc:
            raise UpstreamError(f"Malformed arXiv feed: {exc}") from exc

        entries: List[Dict[str, Any]] = []
        for entry in root.findall("atom:entry", _NS):
            entry_id = _clean(entry.findtext("atom:id", default="", namespaces=_NS))
            pdf_url = None
            for link in entry.findall("atom:link", _NS):
                if link.attrib.get("type") == "application/pdf":
                    pdf_url = link.attrib.get("href")
                    break
            entries.append(
                {
                    "id": entry_id,
                    "arxiv_id": entry_id.rsplit("/abs/", 1)[-1] if entry_id else "",
                    "title": _clean(entry.findtext("atom:title", default="", namespaces=_NS)),
                    "summary": _clean(entry.findtext("atom:summary", default="", namespaces=_NS)),
                    "published": _clean(
                        entry.findtext("atom:published", default="", namespaces=_NS)
                    ),
                    "doi": _clean(entry.findtext("arxiv:doi", default="", namespaces=_NS)) or None,
                    "journal_ref": _clean(
                        entry.findtext("arxiv:journal_ref", default="", namespaces=_NS)
                    )
                    or None,
                    "authors": [
                        _clean(name.text)
                        for name in entry.findall("atom:author/atom:name", _NS)
                        if name.text
                    ],
                    "categories": [
                        category.attrib["term"]
                        for category in entry.findall("atom:category", _NS)
                        if category.attrib.get("term")
                    ],
                    "pdf_url": pdf_url,
                }
            )
        return entries
