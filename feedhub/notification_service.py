"""
Notification service - delivery boundary for newly discovered articles.

The refresh manager hands over one batch per pass (newest first). How it is
presented is up to the ``Notifier`` implementation; the default one logs it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .database.models import Article

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 60
MAX_LISTED_TITLES = 3


@dataclass
class NotificationContent:
    """Rendered notification text."""
    title: str
    body: str


def truncate_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """Single-line truncation with a trailing ellipsis."""
    if len(title) <= max_length:
        return title
    return title[:max_length - 3] + "..."


def build_notification(articles: list[Article], source_names: list[str]) -> NotificationContent:
    """
    Render a batch of new articles.

    Up to three articles are listed by title. Larger batches list the first
    two and summarize the rest.
    """
    count = len(articles)
    title = "1 new article" if count == 1 else f"{count} new articles"

    if count <= MAX_LISTED_TITLES:
        lines = [truncate_title(article.title) for article in articles]
    else:
        lines = [truncate_title(article.title) for article in articles[:2]]
        source_label = "source" if len(source_names) == 1 else "sources"
        lines.append(f"and {count - 2} more from {len(source_names)} {source_label}")

    return NotificationContent(title=title, body="\n".join(lines))


class Notifier(ABC):
    """Receives new-article batches from the refresh manager."""

    @abstractmethod
    def send_new_articles(self, articles: list[Article], source_names: list[str]):
        ...


class LoggingNotifier(Notifier):
    """Writes the rendered notification to the log."""

    def send_new_articles(self, articles: list[Article], source_names: list[str]):
        if not articles:
            return
        content = build_notification(articles, source_names)
        logger.info(f"{content.title}: {' | '.join(content.body.splitlines())}")
