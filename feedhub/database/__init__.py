"""
Database module - SQLite persistence for sources and articles.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .models import Article, SaveResult, Source, SourceGroup
from .article_repository import ArticleRepository
from .source_repository import SourceRepository
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "Article",
    "Source",
    "SourceGroup",
    "SaveResult",
    "ArticleRepository",
    "SourceRepository",
]
