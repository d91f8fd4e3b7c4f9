"""Metadata persistence for photo records.

``MetadataStore`` is the contract the storage engine depends on; two
backends implement it:

* ``JsonMetadataStore`` -- whole-file JSON document, cached in memory.
  Every write re-serialises the full record list to a temp file and
  ``os.replace()``-s it over the target, so readers never see partial
  data.  A single lock serialises writers; the store is single-process.
* ``SqliteMetadataStore`` -- one row per record, per-record transactions,
  ``UNIQUE(checksum)`` enforced by the database.  Connections are
  thread-local, so concurrent request threads are safe.

Both backends enforce checksum uniqueness inside ``save()`` and raise
``DuplicateError`` carrying the existing id, which is how two racing
ingests of identical bytes resolve to one success and one 409.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import UUID

from ..config import ServerConfig
from ..errors import DuplicateError, StorageError
from ..models import PhotoRecord

logger = logging.getLogger(__name__)


class MetadataStore(ABC):
    """Durable CRUD over ``PhotoRecord`` objects."""

    @abstractmethod
    def load_all(self) -> list[PhotoRecord]:
        """Return every record in stable insertion order."""

    @abstractmethod
    def get(self, photo_id: UUID) -> PhotoRecord | None:
        """Return the record for *photo_id*, or ``None``."""

    @abstractmethod
    def save(self, record: PhotoRecord) -> None:
        """Insert or replace *record* keyed by its id.

        Raises:
            DuplicateError: If a different record already has the same
                checksum.
            StorageError: If the write could not be made durable.
        """

    @abstractmethod
    def delete(self, photo_id: UUID) -> None:
        """Remove the record for *photo_id*; no-op if absent."""

    def find_by_checksum(self, checksum: str) -> PhotoRecord | None:
        """Return the record holding *checksum*, or ``None``."""
        for record in self.load_all():
            if record.checksum == checksum:
                return record
        return None

    def close(self) -> None:
        """Release backend resources."""


# ---------------------------------------------------------------------------
# JSON backend
# ---------------------------------------------------------------------------


class JsonMetadataStore(MetadataStore):
    """Full-rewrite JSON file store with an in-memory cache.

    Args:
        file_path: Location of the JSON document.  Parent directories
            are created on first write.
    """

    def __init__(self, file_path: Path) -> None:
        self._file_path = Path(file_path)
        self._cache: dict[UUID, PhotoRecord] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def load_all(self) -> list[PhotoRecord]:
        with self._lock:
            self._ensure_loaded()
            return list(self._cache.values())

    def get(self, photo_id: UUID) -> PhotoRecord | None:
        with self._lock:
            self._ensure_loaded()
            return self._cache.get(photo_id)

    def find_by_checksum(self, checksum: str) -> PhotoRecord | None:
        with self._lock:
            self._ensure_loaded()
            return self._find_checksum(checksum)

    def save(self, record: PhotoRecord) -> None:
        with self._lock:
            self._ensure_loaded()
            existing = self._find_checksum(record.checksum)
            if existing is not None and existing.id != record.id:
                raise DuplicateError(existing.id)

            updated = dict(self._cache)
            updated[record.id] = record
            self._persist(updated)
            self._cache = updated

    def delete(self, photo_id: UUID) -> None:
        with self._lock:
            self._ensure_loaded()
            if photo_id not in self._cache:
                return
            updated = dict(self._cache)
            del updated[photo_id]
            self._persist(updated)
            self._cache = updated

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _find_checksum(self, checksum: str) -> PhotoRecord | None:
        for record in self._cache.values():
            if record.checksum == checksum:
                return record
        return None

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._file_path.exists():
            try:
                with open(self._file_path, encoding="utf-8") as fh:
                    raw = json.load(fh)
            except (OSError, ValueError) as exc:
                raise StorageError(
                    f"Cannot read metadata file {self._file_path}: {exc}"
                ) from exc
            records = [PhotoRecord.model_validate(item) for item in raw]
            self._cache = {r.id: r for r in records}
            logger.info(
                "Loaded %d metadata records from %s",
                len(self._cache),
                self._file_path,
            )
        self._loaded = True

    def _persist(self, records: dict[UUID, PhotoRecord]) -> None:
        """Atomically replace the JSON file with *records*."""
        directory = self._file_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        payload = [
            r.model_dump(mode="json", by_alias=True) for r in records.values()
        ]

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self._file_path)
        except BaseException as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(exc, OSError):
                raise StorageError(
                    f"Failed to write metadata file {self._file_path}: {exc}"
                ) from exc
            raise


# ---------------------------------------------------------------------------
# SQLite backend
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS photo_metadata (
    id                TEXT PRIMARY KEY,
    original_filename TEXT NOT NULL,
    mime_type         TEXT NOT NULL,
    size              INTEGER NOT NULL,
    width             INTEGER,
    height            INTEGER,
    created_at        TEXT NOT NULL,
    taken_at          TEXT,
    checksum          TEXT NOT NULL UNIQUE,
    storage_path      TEXT NOT NULL,
    thumbnail_path    TEXT,
    exif              TEXT
);
CREATE INDEX IF NOT EXISTS idx_photo_created ON photo_metadata(created_at);
"""

_COLUMNS = (
    "id",
    "original_filename",
    "mime_type",
    "size",
    "width",
    "height",
    "created_at",
    "taken_at",
    "checksum",
    "storage_path",
    "thumbnail_path",
    "exif",
)


class SqliteMetadataStore(MetadataStore):
    """Relational store backed by SQLite.

    Each thread gets its own connection; writes run in a transaction
    and rely on the ``UNIQUE(checksum)`` constraint for deduplication.

    Args:
        db_path: SQLite database file.  Created with its schema if it
            does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._thread_local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        conn = self._get_connection()
        conn.executescript(_SCHEMA)
        conn.commit()
        logger.info("SqliteMetadataStore initialized (db=%s)", self._db_path)

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a thread-local connection."""
        conn = getattr(self._thread_local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self._db_path), timeout=30, check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            self._thread_local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def load_all(self) -> list[PhotoRecord]:
        rows = self._get_connection().execute(
            "SELECT * FROM photo_metadata ORDER BY rowid"
        )
        return [self._from_row(row) for row in rows]

    def get(self, photo_id: UUID) -> PhotoRecord | None:
        row = self._get_connection().execute(
            "SELECT * FROM photo_metadata WHERE id = ?", (str(photo_id),)
        ).fetchone()
        return self._from_row(row) if row else None

    def find_by_checksum(self, checksum: str) -> PhotoRecord | None:
        row = self._get_connection().execute(
            "SELECT * FROM photo_metadata WHERE checksum = ?", (checksum,)
        ).fetchone()
        return self._from_row(row) if row else None

    def save(self, record: PhotoRecord) -> None:
        values = self._to_row(record)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(
            f"{col} = excluded.{col}" for col in _COLUMNS if col != "id"
        )
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO photo_metadata ({', '.join(_COLUMNS)}) "
                    f"VALUES ({placeholders}) "
                    f"ON CONFLICT(id) DO UPDATE SET {updates}",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            existing = self.find_by_checksum(record.checksum)
            if existing is not None and existing.id != record.id:
                raise DuplicateError(existing.id) from exc
            raise StorageError(f"Failed to save metadata: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save metadata: {exc}") from exc

    def delete(self, photo_id: UUID) -> None:
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    "DELETE FROM photo_metadata WHERE id = ?", (str(photo_id),)
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete metadata: {exc}") from exc

    def close(self) -> None:
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._thread_local = threading.local()

    @staticmethod
    def _to_row(record: PhotoRecord) -> tuple:
        return (
            str(record.id),
            record.original_filename,
            record.mime_type,
            record.size,
            record.width,
            record.height,
            record.created_at.isoformat(),
            record.taken_at.isoformat() if record.taken_at else None,
            record.checksum,
            record.storage_path,
            record.thumbnail_path,
            record.exif.model_dump_json(by_alias=True) if record.exif else None,
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> PhotoRecord:
        data = dict(row)
        data["exif"] = json.loads(data["exif"]) if data["exif"] else None
        return PhotoRecord.model_validate(data)


def create_metadata_store(config: ServerConfig) -> MetadataStore:
    """Build the metadata store selected by ``config.metadata_backend``."""
    match config.metadata_backend:
        case "json":
            return JsonMetadataStore(config.metadata_file)
        case "sqlite":
            return SqliteMetadataStore(config.database_file)
        case backend:
            raise ValueError(f"Unknown metadata backend: {backend}")
