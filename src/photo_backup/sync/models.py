"""Data contracts for the sync client.

- ``SyncStatus`` / ``SyncState``: the engine's live, in-memory state.
- ``OutcomeKind`` / ``UploadOutcome``: classification of one item.
- ``SyncReport``: aggregate result of one pass.
- ``UploadLedgerEntry``: one durable ledger record.

``SyncState`` is a plain mutable dataclass owned by the engine; the
other models are frozen pydantic models.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    PAUSED = "paused"
    WAITING_FOR_NETWORK = "waitingForNetwork"
    WAITING_FOR_WIFI = "waitingForWiFi"
    ERROR = "error"


_STATUS_LABELS = {
    SyncStatus.IDLE: "Idle",
    SyncStatus.SYNCING: "Syncing...",
    SyncStatus.PAUSED: "Paused",
    SyncStatus.WAITING_FOR_NETWORK: "Waiting for network",
    SyncStatus.WAITING_FOR_WIFI: "Waiting for WiFi",
}


@dataclass
class SyncState:
    """Live progress of the sync engine.

    Never persisted: a restart recomputes everything from the ledger and
    the library.  ``uploaded_count`` counts both new uploads and items
    recognised as duplicates.
    """

    status: SyncStatus = SyncStatus.IDLE
    error_message: str | None = None
    pending_count: int = 0
    uploaded_count: int = 0
    failed_count: int = 0
    total_count: int = 0
    current_item_id: str | None = None

    def reset(self, total: int = 0) -> None:
        self.error_message = None
        self.pending_count = total
        self.uploaded_count = 0
        self.failed_count = 0
        self.total_count = total
        self.current_item_id = None

    def snapshot(self) -> SyncState:
        return replace(self)

    @property
    def description(self) -> str:
        if self.status == SyncStatus.ERROR:
            return f"Error: {self.error_message or 'unknown'}"
        return _STATUS_LABELS[self.status]

    @property
    def progress(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return self.uploaded_count / self.total_count


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class UploadOutcome(BaseModel):
    """Classified result of processing one local asset.

    Attributes:
        kind: success, skipped (duplicate) or failed.
        local_asset_id: Library identifier of the asset.
        photo_id: Server id, for successful uploads.
        error: Failure description, for failed items.
        timestamp: When the item finished processing.
    """

    kind: OutcomeKind
    local_asset_id: str
    photo_id: UUID | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate result of one sync pass.

    Attributes:
        outcomes: Per-item outcomes in processing order.
        started_at: When the pass began.
        completed_at: When the pass ended.
        cancelled: True if the pass stopped before its upload set was
            exhausted (pause, cancellation or time budget).
        status: Engine status when the pass ended.
        error: Pass-level failure message, if any.
    """

    outcomes: list[UploadOutcome] = []
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    cancelled: bool = False
    status: SyncStatus = SyncStatus.IDLE
    error: str | None = None

    model_config = {"frozen": True}

    def _of_kind(self, kind: OutcomeKind) -> list[UploadOutcome]:
        return [o for o in self.outcomes if o.kind == kind]

    @property
    def uploaded(self) -> list[UploadOutcome]:
        return self._of_kind(OutcomeKind.SUCCESS)

    @property
    def skipped(self) -> list[UploadOutcome]:
        return self._of_kind(OutcomeKind.SKIPPED)

    @property
    def failed(self) -> list[UploadOutcome]:
        return self._of_kind(OutcomeKind.FAILED)

    def summary(self) -> str:
        """Format a human-readable summary of the pass.

        Returns:
            Multi-line summary string with counts by outcome.
        """
        header = "Sync pass"
        if self.cancelled:
            header += " (stopped early)"
        if self.error:
            header += f" failed: {self.error}"
        lines = [
            header,
            f"  Uploaded: {len(self.uploaded)}",
            f"  Skipped:  {len(self.skipped)}",
            f"  Failed:   {len(self.failed)}",
            f"  Total:    {len(self.outcomes)}",
        ]
        return "\n".join(lines)


class UploadLedgerEntry(BaseModel):
    """One ledger record.

    ``server_photo_id`` is ``None`` when the content was recognised as a
    duplicate rather than stored separately.
    """

    local_asset_id: str
    server_photo_id: UUID | None = None
    checksum: str
    uploaded_at: datetime = Field(default_factory=utc_now)

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "frozen": True,
    }
