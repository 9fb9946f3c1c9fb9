"""Database initialisation and migration helpers.

``init_db(conn)`` is idempotent and safe to call on an existing database.
``migrate(conn)`` runs incremental schema changes tracked in a version table.
"""

from __future__ import annotations

import logging
import sqlite3

from jobtree.config import settings
from jobtree.db.connection import transaction

logger = logging.getLogger(__name__)

# Incremental migrations as ``(version, sql)``; applied in version order.
MIGRATIONS: list[tuple[int, str]] = [
    # (1, "ALTER TABLE jobs ADD COLUMN foo TEXT;"),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_schema() -> str:
    """Load the bundled schema.sql."""
    return settings.schema_path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes, then apply pending migrations.

    This function is **idempotent**: every DDL statement uses ``IF NOT EXISTS``
    so calling it multiple times on the same database is safe.

    Args:
        conn: An open, configured SQLite connection.
    """
    conn.executescript(_read_schema())
    _ensure_version_table(conn)
    migrate(conn)


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the internal schema-version tracking table if absent."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version    INTEGER PRIMARY KEY,
            applied_at INTEGER DEFAULT (unixepoch())
        )
        """
    )


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) FROM schema_version"
    ).fetchone()
    return row[0] if row else 0


def migrate(
    conn: sqlite3.Connection,
    migrations: list[tuple[int, str]] | None = None,
) -> int:
    """Run any pending incremental migrations.

    Each migration is applied in its own transaction together with its
    ``schema_version`` row, so a failing migration leaves no trace.

    Returns:
        The number of migrations applied by this call.
    """
    pending = sorted(MIGRATIONS if migrations is None else migrations)
    applied = current_version(conn)
    count = 0
    for version, sql in pending:
        if version <= applied:
            continue
        with transaction(conn):
            conn.execute(sql)
            conn.execute(
                "INSERT INTO schema_version(version) VALUES (?)", (version,)
            )
        logger.info("Applied schema migration %d", version)
        count += 1
    return count
