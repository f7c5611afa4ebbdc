"""OpenAlex works client with page-number pagination."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .base import BaseHttpClient, expect_object


def reconstruct_abstract(inverted_index: Dict[str, List[int]]) -> Optional[str]:
    """Rebuild abstract text from OpenAlex's ``abstract_inverted_index``."""

    positions: List[Tuple[int, str]] = [
        (position, word) for word, indices in inverted_index.items() for position in indices
    ]
    if not positions:
        return None

    positions.sort()
    words = [""] * (positions[-1][0] + 1)
    for position, word in positions:
        words[position] = word
    return " ".join(word for word in words if word) or None


class OpenAlexClient(BaseHttpClient):
    BASE_URL = "https://api.openalex.org"

    def search_works(
        self,
        query: str,
        *,
        per_page: int,
        page: int = 1,
        mailto: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return raw work items for ``page`` (1-based) and the reported total."""

        params: Dict[str, Any] = {"search": query, "per-page": per_page, "page": page}
        if mailto:
            params["mailto"] = mailto
        payload = self._get_json_object("/works", params=params)
        items = [item for item in payload.get("results") or [] if isinstance(item, dict)]
        total = expect_object(payload.get("meta") or {}, "OpenAlex meta").get("count") or 0
        return items, int(total)
