"""Photo storage engine: ingestion, listing, read paths and deletion.

Ingestion order is fixed:

1. checksum the bytes and refuse known content (``DuplicateError``)
2. derive dimensions and EXIF
3. assign a fresh id and a ``YYYY/MM/<id>.<ext>`` path
4. write the original
5. write the thumbnail, removing the original again if that fails
6. save the metadata record

Metadata goes last so a crash can leave an orphan *file* but never an
orphan record.  ``reconcile_orphans()`` sweeps such files.

All methods are blocking; the HTTP layer calls them from worker threads.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

from ..config import ServerConfig
from ..errors import (
    DuplicateError,
    ImageProcessingError,
    PhotoNotFoundError,
    StorageError,
    ThumbnailNotFoundError,
)
from ..models import Photo, PhotoRecord, PhotoSortBy, SortOrder
from .image_analysis import ImageAnalysisService
from .metadata_store import MetadataStore

logger = logging.getLogger(__name__)

MIN_PER_PAGE = 1
MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 50
ORPHAN_GRACE_SECONDS = 10 * 60

_MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/heic": "heic",
    "image/heif": "heic",
    "image/webp": "webp",
}


@dataclass
class ReconcileReport:
    """Result of an orphan sweep."""

    orphan_originals: list[str] = field(default_factory=list)
    orphan_thumbnails: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return len(self.orphan_originals) + len(self.orphan_thumbnails)


def file_extension(filename: str, mime_type: str) -> str:
    """Pick the stored file extension.

    The filename's own extension wins; otherwise it is derived from the
    MIME type, falling back to ``jpg``.
    """
    suffix = Path(filename).suffix.lower().lstrip(".")
    if suffix:
        return suffix
    return _MIME_EXTENSIONS.get(mime_type.lower(), "jpg")


def clamp_per_page(per_page: int) -> int:
    return max(MIN_PER_PAGE, min(MAX_PER_PAGE, per_page))


class PhotoStorageEngine:
    """Filesystem-backed photo store.

    Args:
        config: Server configuration (paths and thumbnail size).
        metadata_store: Backend holding ``PhotoRecord`` objects.
        analyzer: Image analysis collaborator.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        config: ServerConfig,
        metadata_store: MetadataStore,
        analyzer: ImageAnalysisService,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.metadata_store = metadata_store
        self.analyzer = analyzer
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.photos_path = config.photos_path
        self.thumbnails_path = config.thumbnails_path

    def ensure_directories(self) -> None:
        """Create the originals and thumbnails roots if missing."""
        try:
            self.photos_path.mkdir(parents=True, exist_ok=True)
            self.thumbnails_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                f"Cannot create storage directories under "
                f"{self.config.storage_path}: {exc}"
            ) from exc

    def is_storage_available(self) -> bool:
        return Path(self.config.storage_path).is_dir()

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def upload_photo(self, filename: str, data: bytes, mime_type: str) -> Photo:
        """Ingest one photo.

        Raises:
            DuplicateError: If identical content is already stored.
            ImageProcessingError: If the thumbnail cannot be produced.
            StorageError: If a file or the metadata cannot be written.
        """
        checksum = self.analyzer.calculate_checksum(data)

        existing = self.metadata_store.find_by_checksum(checksum)
        if existing is not None:
            logger.info(
                "Duplicate upload of %s matches photo %s", filename, existing.id
            )
            raise DuplicateError(existing.id)

        dimensions = self.analyzer.get_dimensions(data)
        exif = self.analyzer.extract_exif(data)

        now = self._clock()
        photo_id = uuid.uuid4()
        ext = file_extension(filename, mime_type)
        storage_path = f"{now.year:04d}/{now.month:02d}/{photo_id}.{ext}"
        thumbnail_path = f"{photo_id}.jpg"

        original_file = self.photos_path / storage_path
        thumbnail_file = self.thumbnails_path / thumbnail_path

        _write_file(original_file, data)

        try:
            thumbnail = self.analyzer.generate_thumbnail(
                data, self.config.thumbnail_max_size
            )
            _write_file(thumbnail_file, thumbnail)
        except (ImageProcessingError, StorageError) as exc:
            _remove_quietly(original_file)
            logger.error(
                "Thumbnail generation failed for %s, original removed: %s",
                filename,
                exc,
            )
            if isinstance(exc, ImageProcessingError):
                raise
            raise ImageProcessingError(
                f"Failed to generate thumbnail: {exc.message}"
            ) from exc

        record = PhotoRecord(
            id=photo_id,
            original_filename=filename,
            mime_type=mime_type,
            size=len(data),
            width=dimensions[0] if dimensions else None,
            height=dimensions[1] if dimensions else None,
            created_at=now,
            taken_at=exif.date_time_original if exif else None,
            checksum=checksum,
            storage_path=storage_path,
            thumbnail_path=thumbnail_path,
            exif=exif,
        )

        try:
            self.metadata_store.save(record)
        except DuplicateError:
            # Lost a race against an identical concurrent upload
            _remove_quietly(original_file)
            _remove_quietly(thumbnail_file)
            raise

        logger.info(
            "Stored photo %s (%s, %d bytes)", photo_id, filename, len(data)
        )
        return Photo.from_record(record)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def list_photos(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        sort_by: PhotoSortBy = PhotoSortBy.CREATED_AT,
        order: SortOrder = SortOrder.DESC,
        year: int | None = None,
        month: int | None = None,
    ) -> tuple[list[Photo], int]:
        """Return one page of photos and the total matching count.

        Filters apply to ingestion time in UTC.  Sorting is stable, so
        ties keep store order in both directions.
        """
        page = max(1, page)
        per_page = clamp_per_page(per_page)

        records = self.metadata_store.load_all()
        if year is not None:
            records = [r for r in records if _utc(r.created_at).year == year]
        if month is not None:
            records = [r for r in records if _utc(r.created_at).month == month]

        records = sorted(
            records,
            key=_sort_key(sort_by),
            reverse=order == SortOrder.DESC,
        )

        total = len(records)
        start = (page - 1) * per_page
        window = records[start : start + per_page]
        return [Photo.from_record(r) for r in window], total

    def get_photo(self, photo_id: UUID) -> Photo:
        return Photo.from_record(self._get_record(photo_id))

    def get_record(self, photo_id: UUID) -> PhotoRecord:
        return self._get_record(photo_id)

    def get_photo_file_path(self, photo_id: UUID) -> Path:
        """Resolve the original's path.

        Raises:
            PhotoNotFoundError: If there is no record.
            StorageError: If the record exists but the file does not.
        """
        record = self._get_record(photo_id)
        path = self.photos_path / record.storage_path
        if not path.is_file():
            raise StorageError("Photo file not found on disk")
        return path

    def get_thumbnail_file_path(self, photo_id: UUID) -> Path:
        record = self._get_record(photo_id)
        if not record.thumbnail_path:
            raise ThumbnailNotFoundError()
        path = self.thumbnails_path / record.thumbnail_path
        if not path.is_file():
            raise ThumbnailNotFoundError()
        return path

    def find_by_checksum(self, checksum: str) -> Photo | None:
        record = self.metadata_store.find_by_checksum(checksum)
        return Photo.from_record(record) if record else None

    def photo_exists(self, photo_id: UUID) -> bool:
        """True when both the record and its original file exist."""
        record = self.metadata_store.get(photo_id)
        if record is None:
            return False
        return (self.photos_path / record.storage_path).is_file()

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_photo(self, photo_id: UUID) -> None:
        """Remove original, thumbnail, then the record.

        Files already gone are ignored.

        Raises:
            PhotoNotFoundError: If there is no record.
        """
        record = self._get_record(photo_id)

        _remove_file(self.photos_path / record.storage_path)
        if record.thumbnail_path:
            _remove_file(self.thumbnails_path / record.thumbnail_path)

        self.metadata_store.delete(photo_id)
        logger.info("Deleted photo %s", photo_id)

    # ------------------------------------------------------------------
    # Orphan sweep
    # ------------------------------------------------------------------

    def reconcile_orphans(
        self, dry_run: bool = False, grace_seconds: float = ORPHAN_GRACE_SECONDS
    ) -> ReconcileReport:
        """Remove stored files that no metadata record references.

        Files modified within *grace_seconds* are left alone, since they
        may belong to an ingest that has not saved its record yet.
        """
        records = self.metadata_store.load_all()
        known_originals = {r.storage_path for r in records}
        known_thumbnails = {r.thumbnail_path for r in records if r.thumbnail_path}
        cutoff = time.time() - grace_seconds

        report = ReconcileReport(dry_run=dry_run)
        for root, known, found in (
            (self.photos_path, known_originals, report.orphan_originals),
            (self.thumbnails_path, known_thumbnails, report.orphan_thumbnails),
        ):
            if not root.is_dir():
                continue
            for path in sorted(root.rglob("*")):
                if not path.is_file() or path.name.endswith(".tmp"):
                    continue
                relative = path.relative_to(root).as_posix()
                if relative in known:
                    continue
                try:
                    if path.stat().st_mtime > cutoff:
                        continue
                except FileNotFoundError:
                    continue
                found.append(relative)
                if not dry_run:
                    _remove_file(path)

        if report.total:
            logger.warning(
                "Orphan sweep %s %d originals and %d thumbnails",
                "found" if dry_run else "removed",
                len(report.orphan_originals),
                len(report.orphan_thumbnails),
            )
        else:
            logger.info("Orphan sweep found nothing to remove")
        return report

    def _get_record(self, photo_id: UUID) -> PhotoRecord:
        record = self.metadata_store.get(photo_id)
        if record is None:
            raise PhotoNotFoundError()
        return record


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sort_key(sort_by: PhotoSortBy) -> Callable[[PhotoRecord], object]:
    match sort_by:
        case PhotoSortBy.FILENAME:
            return lambda r: r.original_filename
        case PhotoSortBy.SIZE:
            return lambda r: r.size
        case PhotoSortBy.TAKEN_AT:
            return lambda r: _utc(r.taken_at or r.created_at)
        case _:
            return lambda r: _utc(r.created_at)


def _write_file(path: Path, data: bytes) -> None:
    """Write *data* to *path* via a temp file and ``os.replace()``."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    except OSError as exc:
        raise StorageError(f"Failed to write {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except OSError as exc:
        _remove_quietly(Path(tmp_path))
        raise StorageError(f"Failed to write {path}: {exc}") from exc


def _remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise StorageError(f"Failed to remove {path}: {exc}") from exc


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)
