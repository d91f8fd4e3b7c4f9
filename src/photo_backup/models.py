"""Pydantic models for photo records and the HTTP API contract.

- ``PhotoRecord``: server-authoritative metadata, including storage paths.
- ``Photo``: public projection of a record (no storage paths).
- ``ExifData``: capture metadata recovered from the image.
- ``PaginationInfo`` / ``PaginatedPhotos``: list endpoint envelope.
- ``PhotoUploadResponse`` / ``HealthResponse``: other response bodies.

All models serialise with camelCase keys (``originalFilename``,
``takenAt`` ...) and accept either spelling on input.  Records are
frozen: a record never changes after creation, it is only deleted.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

_CAMEL = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
}


class PhotoSortBy(str, Enum):
    """Sort keys accepted by the list endpoint."""

    CREATED_AT = "createdAt"
    TAKEN_AT = "takenAt"
    FILENAME = "filename"
    SIZE = "size"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ExifData(BaseModel):
    """Capture metadata extracted from embedded EXIF.

    Attributes:
        camera_make: Camera manufacturer.
        camera_model: Camera model name.
        lens_model: Lens model name.
        focal_length: Focal length in millimetres.
        aperture: F-number.
        shutter_speed: Exposure time as displayed, e.g. ``"1/125"``.
        iso: ISO sensitivity.
        latitude: GPS latitude in decimal degrees (south is negative).
        longitude: GPS longitude in decimal degrees (west is negative).
        altitude: GPS altitude in metres.
        date_time_original: Capture time.
    """

    camera_make: str | None = None
    camera_model: str | None = None
    lens_model: str | None = None
    focal_length: float | None = None
    aperture: float | None = None
    shutter_speed: str | None = None
    iso: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    date_time_original: datetime | None = None

    model_config = _CAMEL


class PhotoRecord(BaseModel):
    """Metadata record for one stored photo.

    Attributes:
        id: Server-assigned unique id.
        original_filename: Filename supplied at upload.
        mime_type: Content type, e.g. ``image/jpeg``.
        size: Original size in bytes.
        width: Pixel width, when it could be determined.
        height: Pixel height, when it could be determined.
        created_at: Server ingestion time (UTC).
        taken_at: Capture time from EXIF, when present.
        checksum: SHA-256 of the original bytes; unique across records.
        storage_path: Original's path relative to the originals root.
        thumbnail_path: Thumbnail's path relative to the thumbnails root.
        exif: Extracted capture metadata.
    """

    id: UUID
    original_filename: str
    mime_type: str
    size: int
    width: int | None = None
    height: int | None = None
    created_at: datetime
    taken_at: datetime | None = None
    checksum: str
    storage_path: str
    thumbnail_path: str | None = None
    exif: ExifData | None = None

    model_config = _CAMEL


class Photo(BaseModel):
    """Public view of a photo returned by the API."""

    id: UUID
    filename: str
    mime_type: str
    size: int
    width: int | None = None
    height: int | None = None
    created_at: datetime
    taken_at: datetime | None = None
    checksum: str

    model_config = _CAMEL

    @classmethod
    def from_record(cls, record: PhotoRecord) -> Photo:
        return cls(
            id=record.id,
            filename=record.original_filename,
            mime_type=record.mime_type,
            size=record.size,
            width=record.width,
            height=record.height,
            created_at=record.created_at,
            taken_at=record.taken_at,
            checksum=record.checksum,
        )


class PaginationInfo(BaseModel):
    """Page position and totals for a list response."""

    page: int
    per_page: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    model_config = _CAMEL

    @classmethod
    def build(cls, page: int, per_page: int, total_items: int) -> PaginationInfo:
        """Derive page counts; ``total_pages = ceil(total_items / per_page)``."""
        total_pages = (
            math.ceil(total_items / per_page) if per_page > 0 else 0
        )
        return cls(
            page=page,
            per_page=per_page,
            total_items=total_items,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class PaginatedPhotos(BaseModel):
    data: list[Photo]
    pagination: PaginationInfo

    model_config = _CAMEL


class PhotoUploadResponse(BaseModel):
    photo: Photo
    message: str = "Photo uploaded successfully"

    model_config = _CAMEL


class HealthResponse(BaseModel):
    status: str
    version: str
    storage_available: bool

    model_config = _CAMEL
