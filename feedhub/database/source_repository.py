"""
Source repository - CRUD, ordering and tag grouping for feed sources.
"""

from .connection import DatabaseConnection
from .converters import row_to_source, source_to_params
from .models import Source, SourceGroup

_SOURCE_COLUMNS = (
    "id, title, site_url, feed_url, is_enabled, refresh_interval_minutes, "
    "display_order, last_fetched_at, etag, last_modified, last_error, "
    "consecutive_failures, tag"
)


class SourceRepository:
    """Repository for source operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(self, source: Source) -> Source:
        """Insert a source. New sources are appended after existing ones in display order."""
        with self._db.transaction() as conn:
            if source.display_order == 0:
                row = conn.execute(
                    "SELECT MAX(display_order) AS max_order, COUNT(*) AS cnt FROM sources"
                ).fetchone()
                if row["cnt"]:
                    source.display_order = (row["max_order"] or 0) + 1
            conn.execute(
                f"""INSERT INTO sources ({_SOURCE_COLUMNS}) VALUES (
                    :id, :title, :site_url, :feed_url, :is_enabled,
                    :refresh_interval_minutes, :display_order, :last_fetched_at,
                    :etag, :last_modified, :last_error, :consecutive_failures, :tag
                )""",
                source_to_params(source)
            )
        return source

    def update(self, source: Source):
        """Persist every field of the source."""
        with self._db.transaction() as conn:
            conn.execute(
                """UPDATE sources SET
                   title = :title, site_url = :site_url, feed_url = :feed_url,
                   is_enabled = :is_enabled,
                   refresh_interval_minutes = :refresh_interval_minutes,
                   display_order = :display_order, last_fetched_at = :last_fetched_at,
                   etag = :etag, last_modified = :last_modified,
                   last_error = :last_error,
                   consecutive_failures = :consecutive_failures, tag = :tag
                   WHERE id = :id""",
                source_to_params(source)
            )

    def update_state(self, source: Source):
        """Persist only the post-fetch state fields, leaving user-edited fields alone."""
        with self._db.transaction() as conn:
            conn.execute(
                """UPDATE sources SET
                   last_fetched_at = :last_fetched_at, etag = :etag,
                   last_modified = :last_modified, last_error = :last_error,
                   consecutive_failures = :consecutive_failures
                   WHERE id = :id""",
                source_to_params(source)
            )

    def delete(self, source_id: str):
        """Delete a source; its articles go with it (ON DELETE CASCADE)."""
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))

    def update_order(self, sources: list[Source]):
        """Rewrite display order from list position, atomically."""
        with self._db.transaction() as conn:
            for index, source in enumerate(sources):
                source.display_order = index
                conn.execute(
                    "UPDATE sources SET display_order = ? WHERE id = ?",
                    (index, source.id)
                )

    def get(self, source_id: str) -> Source | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM sources WHERE id = ?", (source_id,)
            ).fetchone()
            return row_to_source(row) if row else None

    def get_all(self) -> list[Source]:
        """All sources in display order."""
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM sources ORDER BY display_order, rowid"
            ).fetchall()
            return [row_to_source(row) for row in rows]

    def get_enabled(self) -> list[Source]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE is_enabled = 1 ORDER BY display_order, rowid"
            ).fetchall()
            return [row_to_source(row) for row in rows]

    def get_all_sorted_by_name(self) -> list[Source]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM sources ORDER BY title COLLATE NOCASE, rowid"
            ).fetchall()
            return [row_to_source(row) for row in rows]

    def get_name(self, source_id: str) -> str:
        source = self.get(source_id)
        return source.title if source else "Unknown source"

    def get_all_tags(self) -> list[str]:
        """Distinct non-null tags, case-insensitive ascending."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT DISTINCT tag FROM sources
                   WHERE tag IS NOT NULL
                   ORDER BY tag COLLATE NOCASE"""
            ).fetchall()
            return [row["tag"] for row in rows]

    def get_grouped_by_tag(self) -> list[SourceGroup]:
        """
        Sources grouped by tag.

        Tagged groups come first in case-insensitive tag order, the
        uncategorized group (tag=None) last. Sources within a group follow
        display order; empty groups are omitted.
        """
        groups: dict[str | None, list[Source]] = {}
        for source in self.get_all():
            groups.setdefault(source.tag, []).append(source)

        result = [
            SourceGroup(tag=tag, sources=groups[tag])
            for tag in self.get_all_tags()
            if tag in groups
        ]
        if None in groups:
            result.append(SourceGroup(tag=None, sources=groups[None]))
        return result

    def get_ids_for_tag(self, conn, tag: str | None) -> list[str]:
        if tag is None:
            rows = conn.execute("SELECT id FROM sources WHERE tag IS NULL").fetchall()
        else:
            rows = conn.execute("SELECT id FROM sources WHERE tag = ?", (tag,)).fetchall()
        return [row["id"] for row in rows]
