"""Apply the bundled SQL migrations in order, recording each one once."""

from __future__ import annotations

from pathlib import Path
from typing import List, Set

from psycopg import Connection

from harvester.storage.db import get_connection

MIGRATIONS_PATH = Path(__file__).resolve().parent / "sql"


def ensure_schema_migrations(conn: Connection) -> None:
    with conn.transaction():
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                filename TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ DEFAULT now()
            )
            """
        )


def fetch_applied(conn: Connection) -> Set[str]:
    with conn.cursor() as cur:
        cur.execute("SELECT filename FROM schema_migrations")
        return {row[0] for row in cur.fetchall()}


def discover_migrations(migrations_dir: Path = MIGRATIONS_PATH) -> List[Path]:
    return sorted(migrations_dir.glob("*.sql"))


def run_migrations(dsn: str | None = None, migrations_dir: Path = MIGRATIONS_PATH) -> List[str]:
    """Apply pending migrations and return the filenames that were applied."""

    applied: List[str] = []
    with get_connection(dsn) as conn:
        ensure_schema_migrations(conn)
        already_applied = fetch_applied(conn)
        for migration in discover_migrations(migrations_dir):
            if migration.name in already_applied:
                continue
            with conn.transaction():
                conn.execute(migration.read_text())
                conn.execute(
                    "INSERT INTO schema_migrations (filename) VALUES (%s)", (migration.name,)
                )
            applied.append(migration.name)
    return applied
