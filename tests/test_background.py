"""Tests for BackgroundSyncJob limits, soft cancel and time budget."""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from photo_backup.core.client import PhotoClient
from photo_backup.sync.background import BackgroundSyncJob
from photo_backup.sync.engine import SyncEngine
from photo_backup.sync.ledger import UploadLedger
from photo_backup.sync.models import SyncStatus

from test_sync_engine import MemoryLibrary, five_items, upload_response


@pytest.fixture
def ledger(tmp_path):
    return UploadLedger(tmp_path / "uploaded_photos.json")


@pytest.fixture
def client():
    c = MagicMock(spec=PhotoClient)
    c.upload_photo.side_effect = lambda data, filename, mime: upload_response(
        data, filename
    )
    return c


@pytest.fixture
def engine(client, ledger):
    return SyncEngine(client, MemoryLibrary(five_items()), ledger)


def test_rejects_zero_limit(engine):
    with pytest.raises(ValueError, match="at least 1"):
        BackgroundSyncJob(engine, max_items=0)


async def test_processes_at_most_max_items(engine, ledger):
    report = await BackgroundSyncJob(engine, max_items=3).run()

    assert len(report.uploaded) == 3
    assert report.cancelled is False
    assert ledger.count() == 3

    # The next run picks up where this one stopped
    report = await BackgroundSyncJob(engine, max_items=3).run()
    assert len(report.uploaded) == 2
    assert ledger.count() == 5


async def test_soft_cancel_stops_at_next_item(engine, client, ledger):
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _upload(data, filename, mime):
        if filename == "IMG_2.jpg":
            loop.call_soon_threadsafe(cancel.set)
        return upload_response(data, filename)

    client.upload_photo.side_effect = _upload

    report = await BackgroundSyncJob(engine, max_items=5).run(cancel)

    assert report.cancelled is True
    assert [o.local_asset_id for o in report.uploaded] == ["IMG_1", "IMG_2"]
    assert ledger.identifiers() == {"IMG_1", "IMG_2"}
    assert engine.state.status == SyncStatus.IDLE


async def test_time_budget_hard_cancels(engine, client, ledger):
    release = threading.Event()

    def _upload(data, filename, mime):
        if filename == "IMG_2.jpg":
            release.wait(5)
        return upload_response(data, filename)

    client.upload_photo.side_effect = _upload

    try:
        report = await BackgroundSyncJob(
            engine, max_items=5, time_budget=0.3
        ).run()
    finally:
        release.set()

    assert report.cancelled is True
    assert [o.local_asset_id for o in report.outcomes] == ["IMG_1"]
    assert ledger.has("IMG_1")
    assert engine.state.status == SyncStatus.IDLE
    assert not engine.is_syncing


async def test_skipped_when_paused(engine):
    engine._state.status = SyncStatus.PAUSED

    assert await BackgroundSyncJob(engine).run() is None
