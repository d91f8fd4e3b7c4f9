"""Upload ledger: the client's durable record of what is backed up.

The ledger maps each local asset id to an ``UploadLedgerEntry``.  It is
the only source of "already uploaded" truth for the sync engine.

File format (``uploaded_photos.json``)::

    {
      "version": 1,
      "updated_at": "2026-01-01T00:00:00+00:00",
      "entries": {
        "<localAssetId>": {
          "localAssetId": "...",
          "serverPhotoId": "<uuid>" | null,
          "checksum": "<sha256>",
          "uploadedAt": "<iso8601>"
        }
      }
    }

Key design choices:

* **Atomic writes** -- every mutation rewrites the whole file to a temp
  file and ``os.replace()``-s it over the target.
* **Write before swap** -- mutations build a new mapping, persist it,
  and only then replace the in-memory view, so a failed write leaves
  memory and disk in agreement.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

from ..errors import StorageError
from .models import UploadLedgerEntry

logger = logging.getLogger(__name__)

LEDGER_VERSION = 1
LEDGER_FILENAME = "uploaded_photos.json"


class UploadLedger:
    """Durable map of local asset id to upload record.

    Args:
        path: Ledger file.  Parent directories are created on first write.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._entries: dict[str, UploadLedgerEntry] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has(self, local_asset_id: str) -> bool:
        return local_asset_id in self._entries

    def has_checksum(self, checksum: str) -> bool:
        """Return ``True`` if any entry carries *checksum*."""
        return any(e.checksum == checksum for e in self._entries.values())

    def get(self, local_asset_id: str) -> UploadLedgerEntry | None:
        return self._entries.get(local_asset_id)

    def identifiers(self) -> set[str]:
        return set(self._entries)

    def count(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Mutations (each one is durable before it returns)
    # ------------------------------------------------------------------

    def record(
        self,
        local_asset_id: str,
        server_photo_id: UUID | None,
        checksum: str,
    ) -> UploadLedgerEntry:
        """Upsert the entry for *local_asset_id*.

        Raises:
            StorageError: If the ledger file could not be written.  The
                in-memory view is left unchanged.
        """
        entry = UploadLedgerEntry(
            local_asset_id=local_asset_id,
            server_photo_id=server_photo_id,
            checksum=checksum,
        )
        with self._lock:
            updated = dict(self._entries)
            updated[local_asset_id] = entry
            self._save(updated)
            self._entries = updated
        return entry

    def remove(self, local_asset_id: str) -> None:
        """Forget *local_asset_id*.  No-op if absent."""
        with self._lock:
            if local_asset_id not in self._entries:
                return
            updated = dict(self._entries)
            del updated[local_asset_id]
            self._save(updated)
            self._entries = updated

    def clear(self) -> None:
        """Forget every entry (user-initiated history reset)."""
        with self._lock:
            self._save({})
            self._entries = {}
        logger.info("Upload ledger cleared (%s)", self._path)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, UploadLedgerEntry]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as fh:
                raw = json.load(fh)
            entries = {
                key: UploadLedgerEntry.model_validate(value)
                for key, value in raw.get("entries", {}).items()
            }
        except (OSError, ValueError, AttributeError) as exc:
            backup = self._path.with_suffix(self._path.suffix + ".corrupt")
            logger.error(
                "Unreadable upload ledger %s (%s); moved aside to %s",
                self._path,
                exc,
                backup,
            )
            try:
                os.replace(self._path, backup)
            except OSError as move_exc:
                raise StorageError(
                    f"Cannot read upload ledger {self._path}: {exc}"
                ) from move_exc
            return {}

        logger.debug("Loaded %d ledger entries from %s", len(entries), self._path)
        return entries

    def _save(self, entries: dict[str, UploadLedgerEntry]) -> None:
        """Persist *entries* atomically."""
        payload = {
            "version": LEDGER_VERSION,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "entries": {
                key: entry.model_dump(mode="json", by_alias=True)
                for key, entry in entries.items()
            },
        }

        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        except OSError as exc:
            logger.error("Failed to write upload ledger %s: %s", self._path, exc)
            raise StorageError(f"Failed to write upload ledger: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException as exc:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(exc, OSError):
                logger.error(
                    "Failed to write upload ledger %s: %s", self._path, exc
                )
                raise StorageError(
                    f"Failed to write upload ledger: {exc}"
                ) from exc
            raise
