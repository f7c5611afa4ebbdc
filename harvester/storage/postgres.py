"""PostgreSQL implementation of the record store."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from harvester.core.identifiers import normalize_arxiv_id, normalize_doi, normalize_pmid
from harvester.core.models import Paper
from harvester.exceptions import DatabaseError, PaperNotFoundError, RecordStoreWriteError
from harvester.storage.db import resolve_dsn

logger = logging.getLogger(__name__)

_PAPER_COLUMNS = """
    id, title, doi, pubmed_id, arxiv_id, authors, abstract, journal,
    publication_date, external_url, source, keywords, has_performance_data
"""


def _row_to_paper(row: Dict[str, Any]) -> Paper:
    return Paper(
        id=row["id"],
        title=row["title"],
        doi=row["doi"],
        pubmed_id=row["pubmed_id"],
        arxiv_id=row["arxiv_id"],
        authors=row["authors"] or [],
        abstract=row["abstract"],
        journal=row["journal"],
        publication_date=row["publication_date"],
        external_url=row["external_url"],
        source=row["source"],
        keywords=row["keywords"] or [],
        has_performance_data=row["has_performance_data"],
    )


class PostgresRecordStore:
    """Record store over the ``papers`` and ``citations`` tables.

    Connections come from a small pool so concurrent ``create`` calls from the
    harvest worker pool each get their own connection and transaction.
    """

    def __init__(self, dsn: str | None = None, *, max_connections: int = 4) -> None:
        try:
            self.pool = ConnectionPool(
                resolve_dsn(dsn),
                min_size=1,
                max_size=max(1, max_connections),
                kwargs={"row_factory": dict_row},
                open=True,
            )
        except psycopg.Error as exc:
            raise DatabaseError(f"Failed to open connection pool: {exc}") from exc

    def close(self) -> None:
        self.pool.close()

    def __enter__(self) -> "PostgresRecordStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def find_existing(
        self,
        *,
        doi: Optional[str] = None,
        pubmed_id: Optional[str] = None,
        arxiv_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Optional[Paper]:
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in (
            ("doi", normalize_doi(doi)),
            ("pubmed_id", normalize_pmid(pubmed_id)),
            ("arxiv_id", normalize_arxiv_id(arxiv_id)),
            ("title", title),
        ):
            if value:
                clauses.append(f"{column} = %s")
                params.append(value)
        if not clauses:
            return None

        sql = f"SELECT {_PAPER_COLUMNS} FROM papers WHERE {' OR '.join(clauses)} LIMIT 1"
        try:
            with self.pool.connection() as conn:
                row = conn.execute(sql, params).fetchone()
        except psycopg.Error as exc:
            raise DatabaseError(f"Identity lookup failed: {exc}") from exc
        return _row_to_paper(row) if row else None

    def create(self, paper: Paper) -> Paper:
        sql = f"""
            INSERT INTO papers (
                id, title, doi, pubmed_id, arxiv_id, authors, abstract, journal,
                publication_date, external_url, source, keywords, has_performance_data
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_PAPER_COLUMNS}
        """
        params = (
            paper.id or uuid.uuid4().hex,
            paper.title,
            normalize_doi(paper.doi),
            normalize_pmid(paper.pubmed_id),
            normalize_arxiv_id(paper.arxiv_id),
            Jsonb(list(paper.authors)),
            paper.abstract,
            paper.journal,
            paper.publication_date,
            paper.external_url,
            paper.source,
            Jsonb(sorted(paper.keywords)),
            paper.has_performance_data,
        )
        try:
            with self.pool.connection() as conn:
                row = conn.execute(sql, params).fetchone()
        except psycopg.Error as exc:
            raise RecordStoreWriteError(
                f"Failed to create {paper.title[:50]!r}: {exc}"
            ) from exc
        return _row_to_paper(row)

    def get(self, paper_id: str) -> Optional[Paper]:
        try:
            with self.pool.connection() as conn:
                row = conn.execute(
                    f"SELECT {_PAPER_COLUMNS} FROM papers WHERE id = %s", (paper_id,)
                ).fetchone()
        except psycopg.Error as exc:
            raise DatabaseError(f"Failed to load paper {paper_id}: {exc}") from exc
        return _row_to_paper(row) if row else None

    def titles(self) -> Iterable[str]:
        try:
            with self.pool.connection() as conn:
                rows = conn.execute("SELECT title FROM papers").fetchall()
        except psycopg.Error as exc:
            raise DatabaseError(f"Failed to list titles: {exc}") from exc
        return [row["title"] for row in rows]

    def add_citation(self, citing_id: str, cited_id: str) -> bool:
        try:
            with self.pool.connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO citations (citing_id, cited_id)
                    VALUES (%s, %s)
                    ON CONFLICT (citing_id, cited_id) DO NOTHING
                    """,
                    (citing_id, cited_id),
                )
                return cursor.rowcount == 1
        except pg_errors.ForeignKeyViolation as exc:
            missing = citing_id if self.get(citing_id) is None else cited_id
            raise PaperNotFoundError(missing) from exc
        except psycopg.Error as exc:
            raise DatabaseError(
                f"Failed to record citation {citing_id} -> {cited_id}: {exc}"
            ) from exc

    def query_citation_edges(self, paper_id: str) -> Tuple[Set[str], Set[str]]:
        try:
            with self.pool.connection() as conn:
                outgoing = conn.execute(
                    "SELECT cited_id FROM citations WHERE citing_id = %s", (paper_id,)
                ).fetchall()
                incoming = conn.execute(
                    "SELECT citing_id FROM citations WHERE cited_id = %s", (paper_id,)
                ).fetchall()
        except psycopg.Error as exc:
            raise DatabaseError(f"Failed to query citations of {paper_id}: {exc}") from exc
        return {row["cited_id"] for row in outgoing}, {row["citing_id"] for row in incoming}
