"""Optional link validation used to resolve redirects on external URLs."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

from .base import DEFAULT_TIMEOUT_S

logger = logging.getLogger(__name__)


class LinkValidator(Protocol):
    def resolve(self, url: str) -> Optional[str]:
        """Return the final URL when ``url`` is reachable, otherwise ``None``."""


class HttpLinkValidator:
    """Follow redirects with HEAD (falling back to GET) and report the final URL.

    Unreachable links and transport failures resolve to ``None``; the validator
    never raises so callers can treat it as a best-effort enrichment.
    """

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def resolve(self, url: str) -> Optional[str]:
        if not url or not url.lower().startswith(("http://", "https://")):
            return None
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.timeout)
            if response.status_code in (403, 405, 501):
                response = self.session.get(
                    url, allow_redirects=True, timeout=self.timeout, stream=True
                )
                response.close()
        except requests.RequestException as exc:
            logger.debug("Link validation failed for %s: %s", url, exc)
            return None

        if response.status_code >= 400:
            logger.debug("Link %s unreachable (%s)", url, response.status_code)
            return None
        return response.url or url
