"""
Database facade - provides unified access to the source and article repositories.
"""

from pathlib import Path

from .connection import DatabaseConnection
from .article_repository import ArticleRepository
from .source_repository import SourceRepository
from .models import Article, SaveResult, Source, SourceGroup


class Database:
    """
    Unified storage access.

    All writes go through the repositories' serialized transactions; nothing
    else mutates persisted state.
    """

    def __init__(self, db_path: Path):
        self._connection = DatabaseConnection(db_path)

        # Initialize repositories
        self.sources = SourceRepository(self._connection)
        self.articles = ArticleRepository(self._connection, self.sources)

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    # ─────────────────────────────────────────────────────────────
    # Source operations (delegated to SourceRepository)
    # ─────────────────────────────────────────────────────────────

    def add_source(self, source: Source) -> Source:
        return self.sources.add(source)

    def update_source(self, source: Source):
        return self.sources.update(source)

    def update_source_state(self, source: Source):
        return self.sources.update_state(source)

    def delete_source(self, source_id: str):
        return self.sources.delete(source_id)

    def update_sources_order(self, sources: list[Source]):
        return self.sources.update_order(sources)

    def fetch_all_sources(self) -> list[Source]:
        return self.sources.get_all()

    def fetch_enabled_sources(self) -> list[Source]:
        return self.sources.get_enabled()

    def fetch_source(self, source_id: str) -> Source | None:
        return self.sources.get(source_id)

    def fetch_all_sources_sorted_by_name(self) -> list[Source]:
        return self.sources.get_all_sorted_by_name()

    def fetch_sources_grouped_by_tag(self) -> list[SourceGroup]:
        return self.sources.get_grouped_by_tag()

    def fetch_all_tags(self) -> list[str]:
        return self.sources.get_all_tags()

    def fetch_source_name(self, source_id: str) -> str:
        return self.sources.get_name(source_id)

    # ─────────────────────────────────────────────────────────────
    # Article operations (delegated to ArticleRepository)
    # ─────────────────────────────────────────────────────────────

    def save_items(self, articles: list[Article], source_id: str) -> SaveResult:
        return self.articles.save(articles, source_id)

    def fetch_items(
        self,
        source_id: str | None = None,
        limit: int | None = None,
        unread_only: bool = False,
        unread_first: bool = False,
    ) -> list[Article]:
        return self.articles.get_many(source_id, limit, unread_only, unread_first)

    def fetch_article(self, article_id: str) -> Article | None:
        return self.articles.get(article_id)

    def fetch_unread_items_grouped_by_source(self) -> list[tuple[Source, list[Article]]]:
        return self.articles.get_unread_grouped_by_source()

    def mark_as_read(self, article_id: str) -> bool:
        return self.articles.mark_read(article_id)

    def mark_all_as_read(self, source_id: str | None = None) -> int:
        return self.articles.mark_all_read(source_id)

    def mark_all_as_read_for_tag(self, tag: str | None) -> int:
        return self.articles.mark_all_read_for_tag(tag)

    def fetch_unread_count(self, source_id: str | None = None) -> int:
        return self.articles.get_unread_count(source_id)

    def fetch_unread_count_for_tag(self, tag: str | None) -> int:
        return self.articles.get_unread_count_for_tag(tag)

    def fetch_unread_counts_by_source(self) -> dict[str, int]:
        return self.articles.get_unread_counts_by_source()

    def count_items(self, source_id: str) -> int:
        return self.articles.count(source_id)
