"""Crossref works API client used for paginated harvesting."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .base import BaseHttpClient, expect_object


class CrossrefClient(BaseHttpClient):
    """Offset-paginated search over the Crossref works API."""

    BASE_URL = "https://api.crossref.org"

    def search_works(
        self,
        query: str,
        *,
        rows: int,
        offset: int = 0,
        filters: Optional[Dict[str, str]] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of raw work items and the total result count."""

        params: Dict[str, Any] = {"query": query, "rows": rows, "offset": offset}
        if filters:
            params["filter"] = ",".join(f"{key}:{value}" for key, value in filters.items())

        payload = self._get_json_object("/works", params=params)
        message = expect_object(payload.get("message") or {}, "Crossref works message")
        items = [item for item in message.get("items") or [] if isinstance(item, dict)]
        total = message.get("total-results") or 0
        return items, int(total)
