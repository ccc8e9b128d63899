"""
Policy Janitor
==============

Periodic housekeeping, scheduled with APScheduler:

- drop expired site grants (allow-session records) from the policy file
- drop expired page snapshots from the page cache

Expired grants are already ignored by the decision engine; the janitor
only keeps the stored documents from growing forever.
"""

from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.harbor.store import PolicyStore
from src.utils.logger import Logger

if TYPE_CHECKING:
    from src.memory.page_cache import PageCache

logger = Logger("Harbor").child("Janitor")

JOB_ID = "harbor_purge_expired"


class PolicyJanitor:
    """
    Runs sweep() every interval_minutes once started.

    Example:
        janitor = PolicyJanitor(store, page_cache, interval_minutes=60)
        janitor.start()   # needs a running event loop
        ...
        janitor.stop()
    """

    def __init__(
        self,
        store: PolicyStore,
        page_cache: "PageCache | None" = None,
        interval_minutes: int = 60
    ):
        self.store = store
        self.page_cache = page_cache
        self.interval_minutes = max(interval_minutes, 1)
        self.scheduler = AsyncIOScheduler()

    async def sweep(self) -> int:
        """Run one cleanup pass. Returns the number of site grants removed."""
        try:
            removed = await self.store.purge_expired()
            if self.page_cache is not None:
                await self.page_cache.prune()
            return removed
        except Exception as e:
            # A failed sweep is retried on the next tick
            logger.error("Cleanup sweep failed", e)
            return 0

    def start(self) -> None:
        if self.scheduler.running:
            return

        self.scheduler.add_job(
            self.sweep,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Janitor started (every {self.interval_minutes} min)")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Janitor stopped")
