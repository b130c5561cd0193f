"""Database schema migrations."""

import logging
import sqlite3

from tradebook.db.schema import SCHEMA_VERSION

logger = logging.getLogger(__name__)


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version from the database."""
    try:
        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row and row[0] else 0
    except sqlite3.OperationalError:
        return 0


def migrate(conn: sqlite3.Connection) -> int:
    """Run any pending migrations. Returns the resulting schema version."""
    current = get_current_version(conn)
    if current >= SCHEMA_VERSION:
        return current

    logger.info("Migrating schema from version %d to %d", current, SCHEMA_VERSION)
    if current < 1:
        # Fresh database: create_schema built the version 1 tables.
        conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    # Steps for later versions go here, oldest first, each recording its version.
    return get_current_version(conn)
