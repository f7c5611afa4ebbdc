"""Heuristic parsing of free-text bibliography entries."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

MIN_REFERENCE_LENGTH = 10

_DOI_PATTERN = re.compile(r"10\.\d{4,}/[-._;()/:a-zA-Z0-9]+")
_YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")
_QUOTED_TITLE_PATTERNS = (
    re.compile(r'"([^"]+)"'),
    re.compile("[“]([^“”]+)[”]"),
    re.compile("[‘]([^‘’]+)[’]"),
)
_AUTHOR_PATTERN = re.compile(r"([A-Z][a-z]+),?\s+(?:[A-Z]\.?\s*)+")


@dataclass(frozen=True)
class Reference:
    """One cited work as recovered from a bibliography entry or link."""

    title: str = ""
    authors: Tuple[str, ...] = ()
    year: Optional[int] = None
    doi: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_doi(cls, doi: str) -> "Reference":
        return cls(doi=doi, url=f"https://doi.org/{doi}")


def extract_doi(text: Optional[str]) -> Optional[str]:
    """Return the first DOI found in ``text`` (a link or free text)."""

    if not text:
        return None
    match = _DOI_PATTERN.search(text)
    if not match:
        return None
    # Sentence punctuation directly after a DOI is matched by the pattern.
    return match.group(0).rstrip(".,;:") or None


def _quoted_title(text: str) -> str:
    for pattern in _QUOTED_TITLE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return ""


def parse_reference(text: Optional[str]) -> Optional[Reference]:
    """Parse a bibliography entry such as ``Logan, B. E. "Title" (2006) 10.1021/...``.

    Returns ``None`` for entries shorter than :data:`MIN_REFERENCE_LENGTH`
    characters or entries with no title, DOI or author.
    """

    if not text or len(text) < MIN_REFERENCE_LENGTH:
        return None

    doi = extract_doi(text)
    year_match = _YEAR_PATTERN.search(text)
    title = _quoted_title(text)
    authors = tuple(match.group(0).strip() for match in _AUTHOR_PATTERN.finditer(text))

    if not (title or doi or authors):
        return None
    return Reference(
        title=title,
        authors=authors,
        year=int(year_match.group(0)) if year_match else None,
        doi=doi,
        url=f"https://doi.org/{doi}" if doi else None,
    )


def parse_references(entries: Iterable[str]) -> List[Reference]:
    """Parse each entry, dropping the ones without usable data."""

    references = []
    for entry in entries:
        reference = parse_reference(entry)
        if reference is not None:
            references.append(reference)
    return references


def references_from_links(links: Iterable[str]) -> List[Reference]:
    """Build DOI-only references from links such as ``https://doi.org/10.1000/x``."""

    references = []
    for link in links:
        doi = extract_doi(link)
        if doi:
            references.append(Reference.from_doi(doi))
    return references
