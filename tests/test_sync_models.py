"""Tests for sync state, outcomes and report summaries."""

from uuid import uuid4

from photo_backup.sync.models import (
    OutcomeKind,
    SyncReport,
    SyncState,
    SyncStatus,
    UploadLedgerEntry,
    UploadOutcome,
)


class TestSyncState:
    def test_descriptions(self):
        assert SyncState().description == "Idle"
        assert SyncState(status=SyncStatus.SYNCING).description == "Syncing..."
        assert SyncState(status=SyncStatus.WAITING_FOR_WIFI).description == "Waiting for WiFi"
        assert (
            SyncState(status=SyncStatus.ERROR, error_message="boom").description
            == "Error: boom"
        )

    def test_progress(self):
        assert SyncState().progress == 0.0
        assert SyncState(uploaded_count=1, total_count=4).progress == 0.25

    def test_reset_keeps_status(self):
        state = SyncState(
            status=SyncStatus.SYNCING,
            error_message="old",
            uploaded_count=3,
            failed_count=1,
            current_item_id="x",
        )

        state.reset(7)

        assert state.status == SyncStatus.SYNCING
        assert state.error_message is None
        assert state.pending_count == 7
        assert state.total_count == 7
        assert state.uploaded_count == 0
        assert state.current_item_id is None

    def test_snapshot_is_a_copy(self):
        state = SyncState(uploaded_count=1)
        snap = state.snapshot()
        state.uploaded_count = 2

        assert snap.uploaded_count == 1

    def test_status_wire_values(self):
        assert SyncStatus.WAITING_FOR_NETWORK.value == "waitingForNetwork"
        assert SyncStatus.WAITING_FOR_WIFI.value == "waitingForWiFi"


class TestSyncReport:
    def _report(self, **kwargs):
        outcomes = [
            UploadOutcome(kind=OutcomeKind.SUCCESS, local_asset_id="a", photo_id=uuid4()),
            UploadOutcome(kind=OutcomeKind.SKIPPED, local_asset_id="b"),
            UploadOutcome(kind=OutcomeKind.FAILED, local_asset_id="c", error="boom"),
        ]
        return SyncReport(outcomes=outcomes, **kwargs)

    def test_partitions(self):
        report = self._report()

        assert [o.local_asset_id for o in report.uploaded] == ["a"]
        assert [o.local_asset_id for o in report.skipped] == ["b"]
        assert [o.local_asset_id for o in report.failed] == ["c"]

    def test_summary(self):
        summary = self._report(cancelled=True).summary()

        assert summary.splitlines() == [
            "Sync pass (stopped early)",
            "  Uploaded: 1",
            "  Skipped:  1",
            "  Failed:   1",
            "  Total:    3",
        ]

    def test_summary_with_error(self):
        report = SyncReport(status=SyncStatus.ERROR, error="Photo library access denied")
        assert report.summary().startswith("Sync pass failed: Photo library access denied")


def test_ledger_entry_aliases():
    entry = UploadLedgerEntry.model_validate(
        {"localAssetId": "IMG_1", "serverPhotoId": None, "checksum": "a" * 64}
    )
    dumped = entry.model_dump(mode="json", by_alias=True)

    assert entry.local_asset_id == "IMG_1"
    assert set(dumped) == {"localAssetId", "serverPhotoId", "checksum", "uploadedAt"}
