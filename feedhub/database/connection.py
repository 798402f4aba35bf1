"""
Database connection management and schema migrations.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


def _v1_initial(connection: sqlite3.Connection):
    connection.executescript("""
        CREATE TABLE IF NOT EXISTS sources (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            site_url TEXT,
            feed_url TEXT NOT NULL,
            is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
            refresh_interval_minutes INTEGER NOT NULL DEFAULT 0,
            last_fetched_at TIMESTAMP,
            etag TEXT,
            last_modified TEXT,
            last_error TEXT,
            consecutive_failures INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS articles (
            id TEXT PRIMARY KEY,
            source_id TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
            guid_or_id TEXT,
            link TEXT NOT NULL,
            title TEXT NOT NULL,
            published_at TIMESTAMP,
            summary TEXT,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            first_seen_at TIMESTAMP NOT NULL,
            dedupe_key TEXT NOT NULL,
            UNIQUE (source_id, dedupe_key)
        );

        CREATE INDEX IF NOT EXISTS idx_articles_source ON articles(source_id);
        CREATE INDEX IF NOT EXISTS idx_articles_is_read ON articles(is_read);
        CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at);
    """)


def _v2_add_display_order(connection: sqlite3.Connection):
    add_column(connection, "sources", "display_order", "INTEGER NOT NULL DEFAULT 0")


def _v3_add_tag(connection: sqlite3.Connection):
    add_column(connection, "sources", "tag", "TEXT")
    connection.execute("CREATE INDEX IF NOT EXISTS idx_sources_tag ON sources(tag)")


# Applied in order, each exactly once. Only ever append to this list.
MIGRATIONS: list[tuple[str, Callable[[sqlite3.Connection], None]]] = [
    ("v1_initial", _v1_initial),
    ("v2_add_display_order", _v2_add_display_order),
    ("v3_add_tag", _v3_add_tag),
]


def add_column(
    connection: sqlite3.Connection,
    table: str,
    column: str,
    column_type: str
):
    """Add a column to a table if it doesn't exist."""
    cursor = connection.execute(f"PRAGMA table_info({table})")
    columns = [row[1] for row in cursor.fetchall()]
    if column not in columns:
        connection.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")


class DatabaseConnection:
    """Manages database connections, the single write path and migrations."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        self._migrate()

    @contextmanager
    def conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory. Commits only if the block succeeds."""
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized write transaction; rolled back entirely on any exception."""
        with self._write_lock:
            with self.conn() as connection:
                connection.execute("BEGIN IMMEDIATE")
                try:
                    yield connection
                except BaseException:
                    connection.rollback()
                    raise

    def applied_migrations(self) -> list[str]:
        with self.conn() as connection:
            rows = connection.execute(
                "SELECT name FROM schema_migrations ORDER BY rowid"
            ).fetchall()
            return [row["name"] for row in rows]

    def _migrate(self):
        """Apply pending migrations in order."""
        with self.conn() as connection:
            connection.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    name TEXT PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL
                )
            """)

        applied = set(self.applied_migrations())
        for name, migration in MIGRATIONS:
            if name in applied:
                continue
            with self.transaction() as connection:
                migration(connection)
                connection.execute(
                    "INSERT INTO schema_migrations (name, applied_at) VALUES (?, ?)",
                    (name, datetime.now(timezone.utc).isoformat())
                )
            logger.info(f"Applied database migration {name}")
