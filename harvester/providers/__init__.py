"""Catalog clients and the source adapters built on them."""

from .adapters import (
    ArxivAdapter,
    CrossrefAdapter,
    OpenAlexAdapter,
    PubMedAdapter,
    SourceAdapter,
    build_source_adapters,
)

__all__ = [
    "ArxivAdapter",
    "CrossrefAdapter",
    "OpenAlexAdapter",
    "PubMedAdapter",
    "SourceAdapter",
    "build_source_adapters",
]
