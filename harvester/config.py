"""Operator-facing configuration for harvest runs."""

from __future__ import annotations

from email.utils import parseaddr
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from harvester.exceptions import ConfigurationError

KNOWN_SOURCES = ("crossref", "pubmed", "arxiv", "openalex")

DEFAULT_QUERIES: Dict[str, str] = {
    "crossref": '"microbial fuel cell" AND (performance OR power OR current OR efficiency)',
    "pubmed": (
        "microbial fuel cell[Title/Abstract] AND (performance[Title/Abstract] "
        "OR power[Title/Abstract] OR current[Title/Abstract])"
    ),
    "arxiv": 'all:"microbial fuel cell" AND (all:performance OR all:power OR all:current)',
    "openalex": "microbial fuel cell performance",
}

DEFAULT_PAGE_SIZES: Dict[str, int] = {
    "crossref": 200,
    "pubmed": 100,
    "arxiv": 50,
    "openalex": 100,
}

DEFAULT_INDICATOR_TERMS: List[str] = [
    "mw/m",
    "w/m",
    "ma/cm",
    "a/m",
    "power density",
    "current density",
    "coulombic efficiency",
    "energy efficiency",
    "voltage",
    "open circuit",
    "maximum power",
    "peak power",
    "performance",
    "output",
]


class SelfCitationPolicy(str, Enum):
    """How citation edges from a paper to itself are treated at ingestion."""

    ALLOW = "allow"
    SKIP = "skip"
    ERROR = "error"


class HarvestConfig(BaseSettings):  # type: ignore[misc]
    """Settings controlling harvest runs, catalog queries and citation handling."""

    checkpoint_path: Path = Field(
        Path("harvest-checkpoint.json"), description="Location of the checkpoint document"
    )
    db_dsn: Optional[str] = Field(None, description="PostgreSQL DSN for the record store")
    sources: List[str] = Field(
        default_factory=lambda: ["crossref", "pubmed", "arxiv"],
        description="Enabled source adapters, in fan-out order",
    )
    queries: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_QUERIES))
    page_sizes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_PAGE_SIZES))
    round_delay_s: float = Field(5.0, ge=0, description="Sleep between harvest rounds")
    max_rounds: int = Field(1000, gt=0, description="Safety cap on harvest rounds")
    request_timeout_s: float = Field(
        30.0, gt=0, description="Timeout (in seconds) for outbound HTTP requests"
    )
    store_workers: int = Field(4, gt=0, description="Concurrent record store writes")
    indicator_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_INDICATOR_TERMS))
    min_indicator_matches: int = Field(2, gt=0)
    fingerprint_length: int = Field(50, gt=0)
    similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    self_citation_policy: SelfCitationPolicy = SelfCitationPolicy.ALLOW
    validate_links: bool = Field(False, description="Resolve external URLs while harvesting")
    contact_email: Optional[str] = Field(
        None, description="Contact address sent to catalogs that offer a polite pool"
    )
    user_agent: str = "literature-harvester/0.1"

    model_config = SettingsConfigDict(env_prefix="HARVESTER_", env_file=".env", extra="ignore")

    def model_post_init(self, __context: Any) -> None:
        self.checkpoint_path = self.checkpoint_path.expanduser()

    @field_validator("contact_email")
    @classmethod
    def validate_contact_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        _, addr = parseaddr(value)
        if "@" not in addr:
            raise ValueError("contact_email must contain a valid email address")
        return addr

    @field_validator("page_sizes")
    @classmethod
    def validate_page_sizes(cls, value: Dict[str, int]) -> Dict[str, int]:
        merged = {**DEFAULT_PAGE_SIZES, **value}
        for source, size in merged.items():
            if size <= 0:
                raise ValueError(f"page size for {source} must be positive")
        return merged

    @field_validator("sources")
    @classmethod
    def normalize_sources(cls, value: List[str]) -> List[str]:
        return [source.strip().lower() for source in value if source.strip()]

    @field_validator("indicator_terms")
    @classmethod
    def normalize_indicator_terms(cls, value: List[str]) -> List[str]:
        terms = [term.strip().lower() for term in value if term.strip()]
        # Preserve order, drop repeats so the distinct-phrase count stays honest.
        return list(dict.fromkeys(terms))

    def validate_sources(self) -> None:
        """Raise :class:`ConfigurationError` unless every enabled source is usable."""

        if not self.sources:
            raise ConfigurationError("At least one source must be enabled")
        for source in self.sources:
            if source not in KNOWN_SOURCES:
                raise ConfigurationError(
                    f"Unknown source '{source}'. Expected one of: {', '.join(KNOWN_SOURCES)}"
                )
            if not (self.queries.get(source) or "").strip():
                raise ConfigurationError(f"No query configured for source '{source}'")

    def page_size_for(self, source: str) -> int:
        return self.page_sizes[source]

    def effective_user_agent(self) -> str:
        if self.contact_email:
            return f"{self.user_agent} (mailto:{self.contact_email})"
        return self.user_agent

    def build_session(self, session: Optional[requests.Session] = None) -> requests.Session:
        """Return a :class:`requests.Session` carrying the configured User-Agent."""

        session = session or requests.Session()
        session.headers["User-Agent"] = self.effective_user_agent()
        return session
