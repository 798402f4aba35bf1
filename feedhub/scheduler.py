"""
Refresh scheduler.

Background task that wakes up periodically and refreshes the sources that
are due, so each source's own interval and failure backoff decide how often
it is actually fetched.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manager import FeedManager


logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 60


class RefreshScheduler:
    """
    Background scheduler for feed refreshes.

    Runs a full pass at startup, then checks for due sources every tick.
    """

    def __init__(
        self,
        manager: "FeedManager",
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        startup_delay: float = 0,
    ):
        self.manager = manager
        self.tick_seconds = tick_seconds
        self.startup_delay = startup_delay
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the refresh loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(
            f"Refresh scheduler started (global interval: "
            f"{self.manager.settings.global_refresh_interval} minutes)"
        )

    async def stop(self):
        """Stop the refresh loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Refresh scheduler stopped")

    async def restart(self):
        """Restart the scheduler, e.g. after the refresh interval changed."""
        await self.stop()
        await self.start()

    async def poll_now(self):
        """Trigger an immediate refresh of every enabled source."""
        logger.info("Triggering immediate refresh")
        return await self.manager.refresh_all()

    async def _refresh_loop(self):
        """Main refresh loop."""
        if self.startup_delay:
            await asyncio.sleep(self.startup_delay)

        only_due = False
        while self._running:
            try:
                await self.manager.refresh_all(only_due=only_due)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in refresh loop: {e}")

            only_due = True
            await asyncio.sleep(self.tick_seconds)
