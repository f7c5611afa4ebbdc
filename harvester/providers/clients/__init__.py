"""HTTP clients for the external catalogs the harvester pages through."""

from .arxiv import ArxivClient
from .base import (
    BaseHttpClient,
    ClientError,
    NotFoundError,
    RateLimitedError,
    RequestRejectedError,
    UpstreamError,
)
from .crossref import CrossrefClient
from .links import HttpLinkValidator, LinkValidator
from .openalex import OpenAlexClient
from .pubmed import PubMedClient

__all__ = [
    "ArxivClient",
    "BaseHttpClient",
    "ClientError",
    "CrossrefClient",
    "HttpLinkValidator",
    "LinkValidator",
    "NotFoundError",
    "OpenAlexClient",
    "PubMedClient",
    "RateLimitedError",
    "RequestRejectedError",
    "UpstreamError",
]
