"""
Configuration, refresh settings and application services.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from .database import Database
    from .events import ChangeNotifier
    from .fetcher import FeedFetcher
    from .manager import FeedManager
    from .scheduler import RefreshScheduler
    from .services import SourceService

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


class SortOrder(str, Enum):
    UNREAD_FIRST = "unread_first"
    TIME_DESCENDING = "time_descending"

    @classmethod
    def parse(cls, value: str | None) -> "SortOrder":
        try:
            return cls(value)
        except ValueError:
            return cls.UNREAD_FIRST


class Config:
    """Application configuration from environment."""
    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/feedhub.db"))
    PORT: int = _parse_int(os.getenv("PORT"), 5005)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Refresh and presentation settings (owned by the settings store)
    GLOBAL_REFRESH_INTERVAL: int = _parse_int(os.getenv("GLOBAL_REFRESH_INTERVAL"), 15)  # minutes
    DISPLAY_COUNT: int = _parse_int(os.getenv("DISPLAY_COUNT"), 7)
    SORT_ORDER: str = os.getenv("SORT_ORDER", SortOrder.UNREAD_FIRST.value)
    MARK_AS_READ_ON_CLICK: bool = _parse_bool(os.getenv("MARK_AS_READ_ON_CLICK"), default=True)
    ENABLE_NOTIFICATIONS: bool = _parse_bool(os.getenv("ENABLE_NOTIFICATIONS"), default=False)
    ENABLE_SCHEDULER: bool = _parse_bool(os.getenv("ENABLE_SCHEDULER"), default=True)

    # HTTP fetching
    FETCH_CONCURRENCY: int = _parse_int(os.getenv("FETCH_CONCURRENCY"), 5)
    FETCH_TIMEOUT: int = _parse_int(os.getenv("FETCH_TIMEOUT"), 15)  # seconds
    FETCH_MAX_BYTES: int = _parse_int(os.getenv("FETCH_MAX_BYTES"), 10 * 1024 * 1024)
    USER_AGENT: str = os.getenv("USER_AGENT", "FeedHub/1.0")


config = Config()


@dataclass(frozen=True)
class Settings:
    """Externally owned settings read by the refresh manager and the API."""
    global_refresh_interval: int = 15
    display_count: int = 7
    sort_order: SortOrder = SortOrder.UNREAD_FIRST
    mark_as_read_on_click: bool = True
    enable_notifications: bool = False

    @classmethod
    def from_config(cls, cfg: Config = config) -> "Settings":
        return cls(
            global_refresh_interval=max(cfg.GLOBAL_REFRESH_INTERVAL, 1),
            display_count=cfg.DISPLAY_COUNT,
            sort_order=SortOrder.parse(cfg.SORT_ORDER),
            mark_as_read_on_click=cfg.MARK_AS_READ_ON_CLICK,
            enable_notifications=cfg.ENABLE_NOTIFICATIONS,
        )


@dataclass
class AppServices:
    """Services shared by the API, built once at startup and kept on ``app.state``."""
    db: "Database"
    fetcher: "FeedFetcher"
    manager: "FeedManager"
    sources: "SourceService"
    events: "ChangeNotifier"
    settings: Settings
    scheduler: "RefreshScheduler | None" = None


def get_services(request: Request) -> AppServices:
    """Dependency to get the application services."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=500, detail="Services not initialized")
    return services
