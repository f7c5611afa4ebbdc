"""Database utilities for PostgreSQL interactions."""

from __future__ import annotations

import os

import psycopg
from psycopg import Connection

from harvester.exceptions import ConfigurationError, DatabaseError


def resolve_dsn(dsn: str | None = None) -> str:
    resolved = dsn or os.getenv("HARVESTER_DB_DSN")
    if not resolved:
        raise ConfigurationError(
            "Database DSN is not configured. Set HARVESTER_DB_DSN or pass dsn explicitly."
        )
    return resolved


def get_connection(dsn: str | None = None) -> Connection:
    """Create a PostgreSQL connection using the provided or environment DSN."""

    try:
        return psycopg.connect(resolve_dsn(dsn))
    except psycopg.Error as exc:
        raise DatabaseError(f"Failed to connect to database: {exc}") from exc
