"""Resumable photo sync client.

Modules:

- ``engine``     -- ``SyncEngine``: diff library against ledger, upload.
- ``background`` -- ``BackgroundSyncJob``: bounded, cancellable pass.
- ``ledger``     -- ``UploadLedger``: durable uploaded-asset record.
- ``library``    -- ``PhotoLibrary`` contract and ``FolderPhotoLibrary``.
- ``notifier``   -- ``PollingChangeNotifier``: new-asset notifications.
- ``network``    -- ``NetworkMonitor`` and ``ServerProbeMonitor``.
- ``models``     -- ``SyncState``, ``UploadOutcome``, ``SyncReport`` ...

Usage example
-------------
::

    from photo_backup.config import load_client_config
    from photo_backup.sync import create_sync_engine

    engine = create_sync_engine(load_client_config())
    report = await engine.trigger_sync()
    print(report.summary())
"""

from .background import BackgroundSyncJob
from .engine import SyncEngine, create_sync_engine
from .ledger import UploadLedger
from .library import ExportedAsset, FolderPhotoLibrary, LocalAsset, PhotoLibrary
from .models import (
    OutcomeKind,
    SyncReport,
    SyncState,
    SyncStatus,
    UploadLedgerEntry,
    UploadOutcome,
)
from .network import NetworkMonitor, NetworkStatus, ServerProbeMonitor
from .notifier import PollingChangeNotifier

__all__ = [
    "BackgroundSyncJob",
    "ExportedAsset",
    "FolderPhotoLibrary",
    "LocalAsset",
    "NetworkMonitor",
    "NetworkStatus",
    "OutcomeKind",
    "PhotoLibrary",
    "PollingChangeNotifier",
    "ServerProbeMonitor",
    "SyncEngine",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "UploadLedger",
    "UploadLedgerEntry",
    "UploadOutcome",
    "create_sync_engine",
]
