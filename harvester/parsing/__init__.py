"""Parsing helpers for bibliography text."""

from .references import (
    Reference,
    extract_doi,
    parse_reference,
    parse_references,
    references_from_links,
)

__all__ = [
    "Reference",
    "extract_doi",
    "parse_reference",
    "parse_references",
    "references_from_links",
]
