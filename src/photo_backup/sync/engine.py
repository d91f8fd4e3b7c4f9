"""Sync engine: diff the local library against the ledger and upload.

The ``SyncEngine`` runs one pass at a time.  A pass:

1. Checks connectivity (``waitingForNetwork`` / ``waitingForWiFi``).
2. Requests library access and enumerates assets, newest first.
3. Subtracts assets already in the ledger; the rest is the upload set.
4. For each item: export, checksum, skip if the checksum is known,
   otherwise upload.  Every classified item is recorded in the ledger
   before the next one starts, so a pass can stop at any item boundary.
5. Builds a ``SyncReport``.

Error handling is per-item: a single failed upload does not abort the
pass.  Only enumeration-level failures move the engine to ``error``.

Concurrency: all state lives on the event loop; blocking work (export,
HTTP, ledger writes) runs in worker threads.  ``_pass_lock`` guarantees
a single pass in flight.  Library-change notifications go through a
queue consumed by one worker, and a change arriving mid-pass schedules
a follow-up pass instead of starting a concurrent one.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable
from datetime import datetime

from ..config import ClientConfig
from ..core.async_utils import run_sync
from ..core.checksum import compute_checksum
from ..core.client import PhotoClient
from ..errors import DuplicateError, PhotoBackupError
from .ledger import UploadLedger
from .library import FolderPhotoLibrary, LocalAsset, PhotoLibrary
from .models import (
    OutcomeKind,
    SyncReport,
    SyncState,
    SyncStatus,
    UploadOutcome,
    utc_now,
)
from .network import NetworkMonitor, NetworkStatus, ServerProbeMonitor
from .notifier import PollingChangeNotifier

logger = logging.getLogger(__name__)

DEFAULT_RECENT_CAPACITY = 50


class SyncEngine:
    """Drive incremental, resumable uploads of a local photo library.

    Args:
        client: Server API client.
        library: Local photo source.
        ledger: Durable record of uploaded assets.
        network: Connectivity check run before each pass; skipped when
            ``None``.
        wifi_only: Require ``NetworkStatus.WIFI`` to start a pass.
        recent_capacity: Size of the recent-outcomes ring buffer.
        poll_interval: Seconds between library polls in auto-sync mode.
    """

    def __init__(
        self,
        client: PhotoClient,
        library: PhotoLibrary,
        ledger: UploadLedger,
        network: NetworkMonitor | None = None,
        wifi_only: bool = False,
        recent_capacity: int = DEFAULT_RECENT_CAPACITY,
        poll_interval: float = 30.0,
    ) -> None:
        self.client = client
        self.library = library
        self.ledger = ledger
        self.network = network
        self.wifi_only = wifi_only
        self.poll_interval = poll_interval

        self._state = SyncState()
        self._recent: deque[UploadOutcome] = deque(maxlen=recent_capacity)
        self._pass_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._change_pending = False

        self._events: asyncio.Queue[list[str]] | None = None
        self._worker: asyncio.Task | None = None
        self._notifier: PollingChangeNotifier | None = None

        self.last_sync_at: datetime | None = None
        self.last_report: SyncReport | None = None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        """A copy of the current sync state."""
        return self._state.snapshot()

    @property
    def recent_outcomes(self) -> list[UploadOutcome]:
        """Most recent outcomes, newest first."""
        return list(self._recent)

    @property
    def is_syncing(self) -> bool:
        return self._state.status == SyncStatus.SYNCING or self._pass_lock.locked()

    @property
    def auto_sync_enabled(self) -> bool:
        return self._events is not None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def trigger_sync(self) -> SyncReport | None:
        """Run a full pass, unless one is already in flight.

        A trigger while paused behaves like ``resume()``.

        Returns:
            The report of the last pass run, or ``None`` if a pass was
            already in flight.
        """
        if self._state.status == SyncStatus.SYNCING or self._pass_lock.locked():
            logger.debug("Sync already in progress; trigger ignored")
            return None
        try:
            async with self._pass_lock:
                return await self._run_until_settled()
        finally:
            self._requeue_pending_changes()

    def pause(self) -> bool:
        """Stop starting new items.  The in-flight item is not rolled back.

        Returns:
            ``True`` if a running pass was paused.
        """
        if self._state.status != SyncStatus.SYNCING:
            return False
        self._state.status = SyncStatus.PAUSED
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Sync paused")
        return True

    async def resume(self) -> SyncReport | None:
        """Re-run the full pass after a pause.

        Waits for the paused pass to finish its in-flight item first.
        Items uploaded before the pause are skipped through the ledger.
        """
        if self._state.status != SyncStatus.PAUSED:
            return None
        logger.info("Sync resumed")
        try:
            async with self._pass_lock:
                if self._state.status != SyncStatus.PAUSED:
                    return None
                return await self._run_until_settled()
        finally:
            self._requeue_pending_changes()

    async def run_bounded(
        self, max_items: int, cancel_event: asyncio.Event | None = None
    ) -> SyncReport | None:
        """Run one pass over at most *max_items* of the upload set.

        Used for background execution: stops at the next item boundary
        once *cancel_event* is set, and tolerates hard cancellation.
        Returns ``None`` when a pass is already running or the engine is
        paused.
        """
        if self._state.status == SyncStatus.PAUSED or self.is_syncing:
            return None
        try:
            async with self._pass_lock:
                return await self._run_pass(
                    limit=max_items, cancel_event=cancel_event
                )
        finally:
            self._requeue_pending_changes()

    # ------------------------------------------------------------------
    # Auto sync (change notifications)
    # ------------------------------------------------------------------

    async def start_auto_sync(self) -> None:
        """Watch the library and sync whenever new photos appear."""
        if self._events is not None:
            return
        self._events = asyncio.Queue()
        self._worker = asyncio.create_task(self._consume_changes(self._events))
        self._notifier = PollingChangeNotifier(
            self.library, self.notify_library_changed, self.poll_interval
        )
        await self._notifier.start()

    async def stop_auto_sync(self) -> None:
        if self._notifier is not None:
            await self._notifier.stop()
            self._notifier = None
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._events = None

    def notify_library_changed(self, asset_ids: Iterable[str]) -> None:
        """Queue a change notification.  Never blocks."""
        if self._events is None:
            logger.debug("Auto sync disabled; change notification dropped")
            return
        self._events.put_nowait(list(asset_ids))

    async def _consume_changes(self, events: asyncio.Queue[list[str]]) -> None:
        while True:
            ids = await events.get()
            # Coalesce a burst of notifications into one pass
            while not events.empty():
                ids.extend(events.get_nowait())
            logger.debug("Handling change notification for %d assets", len(ids))

            if self._state.status == SyncStatus.PAUSED:
                continue
            if self._pass_lock.locked():
                self._change_pending = True
                continue
            async with self._pass_lock:
                await self._run_until_settled()

    def _requeue_pending_changes(self) -> None:
        """Hand a change that arrived while the lock was held back to the
        worker.  A paused engine keeps the flag; resume rescans anyway."""
        if not self._change_pending or self._events is None:
            return
        if self._state.status == SyncStatus.PAUSED:
            return
        self._change_pending = False
        self._events.put_nowait([])

    # ------------------------------------------------------------------
    # Pass execution (caller holds _pass_lock)
    # ------------------------------------------------------------------

    async def _run_until_settled(self) -> SyncReport:
        report = await self._run_pass()
        while self._change_pending and self._state.status == SyncStatus.IDLE:
            logger.debug("Running follow-up pass for queued changes")
            report = await self._run_pass()
        return report

    async def _run_pass(
        self,
        limit: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncReport:
        started_at = utc_now()
        outcomes: list[UploadOutcome] = []
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._change_pending = False

        self._state.reset()
        self._state.status = SyncStatus.SYNCING

        try:
            waiting = await self._check_network()
            if waiting is not None:
                self._state.status = waiting
                logger.info("Sync deferred: %s", self._state.description)
                return self._finish(started_at, outcomes, cancelled=False)

            try:
                upload_set = await self._find_assets_to_upload()
            except (PhotoBackupError, OSError) as exc:
                message = getattr(exc, "message", None) or str(exc)
                self._state.status = SyncStatus.ERROR
                self._state.error_message = message
                logger.error("Sync pass aborted: %s", message)
                return self._finish(started_at, outcomes, cancelled=False)

            if limit is not None:
                upload_set = upload_set[:limit]

            self._state.reset(len(upload_set))
            logger.info("Sync pass started: %d photos to upload", len(upload_set))

            cancelled = False
            for asset in upload_set:
                if stop_event.is_set() or (
                    cancel_event is not None and cancel_event.is_set()
                ):
                    cancelled = True
                    break

                self._state.current_item_id = asset.id
                outcome = await self._process_item(asset)
                outcomes.append(outcome)
                self._recent.appendleft(outcome)

                if outcome.kind == OutcomeKind.FAILED:
                    self._state.failed_count += 1
                else:
                    self._state.uploaded_count += 1
                self._state.pending_count -= 1

            self._state.current_item_id = None
            if self._state.status == SyncStatus.SYNCING:
                self._state.status = SyncStatus.IDLE
                self.last_sync_at = utc_now()

            report = self._finish(started_at, outcomes, cancelled=cancelled)
            logger.info(
                "Sync pass finished: %d uploaded, %d failed, %d pending",
                self._state.uploaded_count,
                self._state.failed_count,
                self._state.pending_count,
            )
            return report

        except asyncio.CancelledError:
            # Hard cancellation: ledger entries already written stand
            self._state.status = SyncStatus.IDLE
            self._state.current_item_id = None
            self._finish(started_at, outcomes, cancelled=True)
            logger.info("Sync pass cancelled after %d items", len(outcomes))
            raise
        except Exception as exc:
            # Unexpected failure: the pass ends in ``error``, not ``syncing``
            message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            self._state.status = SyncStatus.ERROR
            self._state.error_message = message
            self._state.current_item_id = None
            logger.exception("Sync pass failed unexpectedly: %s", message)
            return self._finish(started_at, outcomes, cancelled=False)
        finally:
            if self._stop_event is stop_event:
                self._stop_event = None

    def _finish(
        self,
        started_at: datetime,
        outcomes: list[UploadOutcome],
        cancelled: bool,
    ) -> SyncReport:
        report = SyncReport(
            outcomes=list(outcomes),
            started_at=started_at,
            completed_at=utc_now(),
            cancelled=cancelled,
            status=self._state.status,
            error=self._state.error_message,
        )
        self.last_report = report
        return report

    async def _check_network(self) -> SyncStatus | None:
        if self.network is None:
            return None
        status = await run_sync(self.network.status)
        if status == NetworkStatus.UNAVAILABLE:
            return SyncStatus.WAITING_FOR_NETWORK
        if self.wifi_only and status != NetworkStatus.WIFI:
            return SyncStatus.WAITING_FOR_WIFI
        return None

    async def _find_assets_to_upload(self) -> list[LocalAsset]:
        await run_sync(self.library.request_authorization)
        assets = await run_sync(self.library.fetch_assets)
        uploaded = self.ledger.identifiers()
        return [a for a in assets if a.id not in uploaded]

    async def _process_item(self, asset: LocalAsset) -> UploadOutcome:
        """Export, dedup and upload one asset; never raises (except cancel)."""
        try:
            exported = await run_sync(self.library.export_asset, asset)
            checksum = compute_checksum(exported.data)

            if self.ledger.has_checksum(checksum):
                await run_sync(self.ledger.record, asset.id, None, checksum)
                logger.info("Skipped %s: content already backed up", asset.id)
                return UploadOutcome(
                    kind=OutcomeKind.SKIPPED, local_asset_id=asset.id
                )

            try:
                response = await run_sync(
                    self.client.upload_photo,
                    exported.data,
                    exported.filename,
                    exported.mime_type,
                )
            except DuplicateError:
                await run_sync(self.ledger.record, asset.id, None, checksum)
                logger.info("Skipped %s: server already has it", asset.id)
                return UploadOutcome(
                    kind=OutcomeKind.SKIPPED, local_asset_id=asset.id
                )

            await run_sync(
                self.ledger.record, asset.id, response.photo.id, checksum
            )
            logger.debug("Uploaded %s as %s", asset.id, response.photo.id)
            return UploadOutcome(
                kind=OutcomeKind.SUCCESS,
                local_asset_id=asset.id,
                photo_id=response.photo.id,
            )
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            logger.warning("Failed to upload %s: %s", asset.id, message)
            return UploadOutcome(
                kind=OutcomeKind.FAILED, local_asset_id=asset.id, error=message
            )


def create_sync_engine(config: ClientConfig) -> SyncEngine:
    """Construct the engine and its collaborators from configuration."""
    client = PhotoClient(config)
    return SyncEngine(
        client=client,
        library=FolderPhotoLibrary(config.library_path),
        ledger=UploadLedger(config.ledger_path),
        network=ServerProbeMonitor(client),
        wifi_only=config.wifi_only,
        recent_capacity=config.recent_outcomes_capacity,
        poll_interval=config.poll_interval,
    )
