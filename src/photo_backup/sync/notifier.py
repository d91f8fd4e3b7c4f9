"""Library change notification by periodic polling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..core.async_utils import run_sync
from ..errors import PhotoBackupError
from .library import PhotoLibrary

logger = logging.getLogger(__name__)


class PollingChangeNotifier:
    """Reports newly inserted assets to *callback*.

    The first snapshot is taken by ``start()``; each later poll delivers
    the ids that were not in the previous snapshot, newest first.
    Removed assets are not reported.

    Args:
        library: Library to poll.
        callback: Receives a list of new asset ids.  Must not block.
        interval: Seconds between polls.
    """

    def __init__(
        self,
        library: PhotoLibrary,
        callback: Callable[[list[str]], None],
        interval: float = 30.0,
    ):
        self.library = library
        self.callback = callback
        self.interval = interval
        self._known: set[str] = set()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._known = set(await self._snapshot() or [])
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Watching library for changes every %.0fs", self.interval
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def poll_once(self) -> list[str]:
        """Take a snapshot and deliver any new ids.  Returns them."""
        current = await self._snapshot()
        if current is None:
            return []
        inserted = [i for i in current if i not in self._known]
        self._known = set(current)
        if inserted:
            logger.info("Library change: %d new photos", len(inserted))
            self.callback(inserted)
        return inserted

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll_once()

    async def _snapshot(self) -> list[str] | None:
        try:
            assets = await run_sync(self.library.fetch_assets)
        except (PhotoBackupError, OSError) as exc:
            logger.warning("Library poll failed: %s", exc)
            return None
        return [a.id for a in assets]
