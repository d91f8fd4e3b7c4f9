"""Bounded, cancellable background sync.

A ``BackgroundSyncJob`` models an OS-granted execution window: it
processes at most ``max_items`` of the upload set and must be safe to
stop at any point.  Progress is checkpointed in the ledger after every
item, so stopping never needs a rollback.

Two ways to stop a run:

* **Soft** -- set the ``cancel_event``; the pass stops before starting
  its next item.
* **Hard** -- the ``time_budget`` elapses; the pass is cancelled at its
  current suspension point (an in-flight upload may still complete on
  the server, in which case the next pass sees it as a duplicate).
"""

import asyncio
import logging

from .engine import SyncEngine
from .models import SyncReport

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 50


class BackgroundSyncJob:
    """Run one bounded sync pass within an optional time budget.

    Args:
        engine: Engine to drive.
        max_items: Upper bound on items processed in this run.
        time_budget: Seconds before the pass is hard-cancelled;
            ``None`` for no limit.
    """

    def __init__(
        self,
        engine: SyncEngine,
        max_items: int = DEFAULT_MAX_ITEMS,
        time_budget: float | None = None,
    ):
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.engine = engine
        self.max_items = max_items
        self.time_budget = time_budget

    async def run(
        self, cancel_event: asyncio.Event | None = None
    ) -> SyncReport | None:
        """Execute the job.

        Returns:
            The pass report (``cancelled=True`` when stopped early), or
            ``None`` if the engine was busy or paused.
        """
        cancel_event = cancel_event or asyncio.Event()
        logger.info(
            "Background sync: up to %d items, budget %s",
            self.max_items,
            f"{self.time_budget:.0f}s" if self.time_budget else "unlimited",
        )

        try:
            report = await asyncio.wait_for(
                self.engine.run_bounded(self.max_items, cancel_event),
                timeout=self.time_budget,
            )
        except asyncio.TimeoutError:
            logger.warning("Background sync exceeded its time budget")
            return self.engine.last_report

        if report is None:
            logger.info("Background sync skipped: engine busy or paused")
        return report
