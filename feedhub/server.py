"""
FeedHub API Server

FastAPI application providing endpoints for:
- Source management (subscribe, edit, reorder, remove)
- Refresh (all sources or one)
- Articles (list, unread counts, read state)
- Settings and health

Run with: python -m uvicorn feedhub.server:app --port 5005
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import AppServices, Config, Settings, config
from .database import Database
from .events import ChangeNotifier
from .feeds import FeedParser
from .fetcher import FeedFetcher
from .manager import FeedManager
from .notification_service import LoggingNotifier
from .routes import articles_router, misc_router, sources_router
from .scheduler import RefreshScheduler
from .services import SourceService

logger = logging.getLogger(__name__)


def build_services(cfg: Config = config) -> AppServices:
    """Construct the service graph once, from configuration."""
    settings = Settings.from_config(cfg)
    db = Database(cfg.DB_PATH)
    fetcher = FeedFetcher(
        concurrency=cfg.FETCH_CONCURRENCY,
        timeout=cfg.FETCH_TIMEOUT,
        max_bytes=cfg.FETCH_MAX_BYTES,
        user_agent=cfg.USER_AGENT,
    )
    parser = FeedParser()
    events = ChangeNotifier()
    manager = FeedManager(
        db,
        fetcher,
        parser=parser,
        settings=settings,
        events=events,
        notifier=LoggingNotifier(),
    )
    return AppServices(
        db=db,
        fetcher=fetcher,
        manager=manager,
        sources=SourceService(db, fetcher, parser=parser, events=events),
        events=events,
        settings=settings,
        scheduler=RefreshScheduler(manager) if cfg.ENABLE_SCHEDULER else None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    # Startup - skip if already initialized (e.g., by tests)
    if getattr(app.state, "services", None) is None:
        logging.basicConfig(level=config.LOG_LEVEL)
        app.state.services = build_services()
        logger.info(f"Database ready at {config.DB_PATH}")

    services: AppServices = app.state.services
    if services.scheduler:
        await services.scheduler.start()

    yield

    # Shutdown
    if services.scheduler:
        await services.scheduler.stop()


app = FastAPI(
    title="FeedHub API",
    version=__version__,
    lifespan=lifespan
)

# Include routers
app.include_router(misc_router)
app.include_router(sources_router)
app.include_router(articles_router)
