from __future__ import annotations

import re
import unicodedata

_DOI_PREFIX_PATTERN = re.compile(r"^(https?://)?(dx\.)?doi\.org/", re.IGNORECASE)
_ARXIV_PREFIX_PATTERN = re.compile(r"^(https?://)?(www\.)?arxiv\.org/(abs|pdf)/", re.IGNORECASE)
_ARXIV_VERSION_PATTERN = re.compile(r"v\d+$")
_PMID_PATTERN = re.compile(r"^(pmid:)?\s*(\d+)$", re.IGNORECASE)


def normalize_doi(doi: str | None) -> str | None:
    """Normalize a DOI string into a canonical lowercase form.

    Leading resolver prefixes (``https://doi.org/``) and ``doi:`` are removed and
    the identifier is lowercased. Empty or missing values return ``None``.
    """

    if not doi:
        return None

    cleaned = doi.strip()
    cleaned = _DOI_PREFIX_PATTERN.sub("", cleaned)
    if cleaned.lower().startswith("doi:"):
        cleaned = cleaned.split(":", 1)[1]
    cleaned = cleaned.strip().lower()

    return cleaned or None


def normalize_arxiv_id(arxiv_id: str | None) -> str | None:
    """Reduce an arXiv identifier or abs/pdf URL to its bare, unversioned id."""

    if not arxiv_id:
        return None

    cleaned = _ARXIV_PREFIX_PATTERN.sub("", arxiv_id.strip())
    if cleaned.lower().startswith("arxiv:"):
        cleaned = cleaned.split(":", 1)[1]
    if cleaned.endswith(".pdf"):
        cleaned = cleaned[: -len(".pdf")]
    cleaned = _ARXIV_VERSION_PATTERN.sub("", cleaned.strip())
    return cleaned or None


def normalize_pmid(pmid: str | int | None) -> str | None:
    if pmid is None:
        return None
    match = _PMID_PATTERN.match(str(pmid).strip())
    return match.group(2) if match else None


def normalize_title(title: str | None) -> str:
    """Normalize a title by collapsing whitespace and normalizing unicode."""

    if not title:
        return ""

    normalized = unicodedata.normalize("NFKC", title)
    return " ".join(normalized.split())
