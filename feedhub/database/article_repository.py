"""
Article repository - dedup-aware merge, listing and read state.
"""

from .connection import DatabaseConnection
from .converters import article_to_params, row_to_article
from .models import Article, SaveResult, Source

# Dated articles first, then newest published, then newest first-seen.
_DISPLAY_ORDER = (
    "(published_at IS NULL) ASC, published_at DESC, first_seen_at DESC, rowid"
)


class ArticleRepository:
    """Repository for article operations."""

    def __init__(self, db: DatabaseConnection, sources):
        self._db = db
        self._sources = sources

    def save(self, articles: list[Article], source_id: str) -> SaveResult:
        """
        Merge parsed articles for one source in a single transaction.

        An article whose (source_id, dedupe_key) is already stored keeps its
        id, read flag and first-seen time; title, link, summary and published
        date are refreshed. Anything else is inserted and counted as new.
        """
        new_articles: list[Article] = []

        with self._db.transaction() as conn:
            for article in articles:
                article.source_id = source_id
                existing = conn.execute(
                    """SELECT * FROM articles
                       WHERE source_id = ? AND dedupe_key = ?""",
                    (source_id, article.dedupe_key)
                ).fetchone()

                if existing:
                    stored = row_to_article(existing)
                    article.id = stored.id
                    article.is_read = stored.is_read
                    article.first_seen_at = stored.first_seen_at
                    conn.execute(
                        """UPDATE articles SET
                           guid_or_id = :guid_or_id, link = :link, title = :title,
                           published_at = :published_at, summary = :summary
                           WHERE id = :id""",
                        article_to_params(article)
                    )
                else:
                    conn.execute(
                        """INSERT INTO articles
                           (id, source_id, guid_or_id, link, title, published_at,
                            summary, is_read, first_seen_at, dedupe_key)
                           VALUES (:id, :source_id, :guid_or_id, :link, :title,
                                   :published_at, :summary, :is_read,
                                   :first_seen_at, :dedupe_key)""",
                        article_to_params(article)
                    )
                    new_articles.append(article)

        return SaveResult(new_count=len(new_articles), new_articles=new_articles)

    def get(self, article_id: str) -> Article | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM articles WHERE id = ?", (article_id,)
            ).fetchone()
            return row_to_article(row) if row else None

    def get_many(
        self,
        source_id: str | None = None,
        limit: int | None = None,
        unread_only: bool = False,
        unread_first: bool = False,
    ) -> list[Article]:
        """Get articles with optional filters, newest display date first."""
        query = "SELECT * FROM articles WHERE 1=1"
        params: list = []

        if source_id is not None:
            query += " AND source_id = ?"
            params.append(source_id)
        if unread_only:
            query += " AND is_read = 0"

        order = _DISPLAY_ORDER
        if unread_first:
            order = "is_read ASC, " + order
        query += f" ORDER BY {order}"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._db.conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return [row_to_article(row) for row in rows]

    def get_unread_grouped_by_source(self) -> list[tuple[Source, list[Article]]]:
        """Unread articles per source, sources by name; sources with none are left out."""
        result = []
        for source in self._sources.get_all_sorted_by_name():
            articles = self.get_many(source_id=source.id, unread_only=True)
            if articles:
                result.append((source, articles))
        return result

    def mark_read(self, article_id: str) -> bool:
        """Mark one article as read. Returns False if it doesn't exist."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE articles SET is_read = 1 WHERE id = ?", (article_id,)
            )
            return cursor.rowcount > 0

    def mark_all_read(self, source_id: str | None = None) -> int:
        """Mark all articles (optionally of one source) as read. Returns count updated."""
        with self._db.transaction() as conn:
            if source_id is not None:
                cursor = conn.execute(
                    "UPDATE articles SET is_read = 1 WHERE source_id = ? AND is_read = 0",
                    (source_id,)
                )
            else:
                cursor = conn.execute(
                    "UPDATE articles SET is_read = 1 WHERE is_read = 0"
                )
            return cursor.rowcount

    def mark_all_read_for_tag(self, tag: str | None) -> int:
        """Mark every article of the sources under ``tag`` (None = uncategorized) as read."""
        with self._db.transaction() as conn:
            source_ids = self._sources.get_ids_for_tag(conn, tag)
            if not source_ids:
                return 0
            placeholders = ",".join("?" * len(source_ids))
            cursor = conn.execute(
                f"""UPDATE articles SET is_read = 1
                    WHERE is_read = 0 AND source_id IN ({placeholders})""",
                source_ids
            )
            return cursor.rowcount

    def get_unread_count(self, source_id: str | None = None) -> int:
        with self._db.conn() as conn:
            if source_id is not None:
                row = conn.execute(
                    "SELECT COUNT(*) as count FROM articles WHERE source_id = ? AND is_read = 0",
                    (source_id,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) as count FROM articles WHERE is_read = 0"
                ).fetchone()
            return row["count"] if row else 0

    def get_unread_counts_by_source(self) -> dict[str, int]:
        """Unread counts keyed by source id; sources with none are absent."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT source_id, COUNT(*) as count FROM articles
                   WHERE is_read = 0 GROUP BY source_id"""
            ).fetchall()
            return {row["source_id"]: row["count"] for row in rows}

    def get_unread_count_for_tag(self, tag: str | None) -> int:
        with self._db.conn() as conn:
            source_ids = self._sources.get_ids_for_tag(conn, tag)
            if not source_ids:
                return 0
            placeholders = ",".join("?" * len(source_ids))
            row = conn.execute(
                f"""SELECT COUNT(*) as count FROM articles
                    WHERE is_read = 0 AND source_id IN ({placeholders})""",
                source_ids
            ).fetchone()
            return row["count"] if row else 0

    def count(self, source_id: str) -> int:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) as count FROM articles WHERE source_id = ?",
                (source_id,)
            ).fetchone()
            return row["count"]
