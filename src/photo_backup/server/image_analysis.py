"""Image analysis: dimensions, EXIF capture metadata, thumbnails, checksums.

The storage engine only talks to the ``ImageAnalysisService`` interface.
``PillowImageAnalyzer`` is the production implementation; HEIC/HEIF
decoding comes from ``pillow-heif``, which registers itself as a Pillow
opener when this module is imported.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from PIL import ExifTags, Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from ..core.checksum import compute_checksum
from ..errors import ImageProcessingError
from ..models import ExifData

logger = logging.getLogger(__name__)

register_heif_opener()

THUMBNAIL_QUALITY = 80
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class ImageAnalysisService(ABC):
    """Derives metadata and thumbnails from raw image bytes."""

    @abstractmethod
    def get_dimensions(self, data: bytes) -> tuple[int, int] | None:
        """Return ``(width, height)`` or ``None`` if undecodable."""

    @abstractmethod
    def extract_exif(self, data: bytes) -> ExifData | None:
        """Return capture metadata, or ``None`` when there is none."""

    @abstractmethod
    def generate_thumbnail(self, data: bytes, max_size: int) -> bytes:
        """Return JPEG thumbnail bytes bounded by *max_size* on each edge.

        Raises:
            ImageProcessingError: If the image cannot be decoded or encoded.
        """

    def calculate_checksum(self, data: bytes) -> str:
        return compute_checksum(data)


class PillowImageAnalyzer(ImageAnalysisService):
    """Pillow-backed analyzer.  EXIF orientation is applied before
    measuring and before thumbnailing, so portrait shots report their
    displayed dimensions."""

    def get_dimensions(self, data: bytes) -> tuple[int, int] | None:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img = ImageOps.exif_transpose(img)
                return img.size
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("Cannot read image dimensions: %s", exc)
            return None

    def extract_exif(self, data: bytes) -> ExifData | None:
        try:
            with Image.open(io.BytesIO(data)) as img:
                exif = img.getexif()
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("Cannot read EXIF: %s", exc)
            return None

        if not exif:
            return None

        sub = exif.get_ifd(ExifTags.IFD.Exif)
        gps = exif.get_ifd(ExifTags.IFD.GPSInfo)

        exposure = _to_float(sub.get(ExifTags.Base.ExposureTime))
        iso = sub.get(ExifTags.Base.ISOSpeedRatings)
        if isinstance(iso, tuple):
            iso = iso[0] if iso else None

        result = ExifData(
            camera_make=_clean_str(exif.get(ExifTags.Base.Make)),
            camera_model=_clean_str(exif.get(ExifTags.Base.Model)),
            lens_model=_clean_str(sub.get(ExifTags.Base.LensModel)),
            focal_length=_to_float(sub.get(ExifTags.Base.FocalLength)),
            aperture=_to_float(sub.get(ExifTags.Base.FNumber)),
            shutter_speed=_format_shutter(exposure),
            iso=int(iso) if iso is not None else None,
            latitude=_gps_coordinate(
                gps.get(ExifTags.GPS.GPSLatitude),
                gps.get(ExifTags.GPS.GPSLatitudeRef),
                negative_ref="S",
            ),
            longitude=_gps_coordinate(
                gps.get(ExifTags.GPS.GPSLongitude),
                gps.get(ExifTags.GPS.GPSLongitudeRef),
                negative_ref="W",
            ),
            altitude=_gps_altitude(
                gps.get(ExifTags.GPS.GPSAltitude),
                gps.get(ExifTags.GPS.GPSAltitudeRef),
            ),
            date_time_original=_parse_exif_datetime(
                sub.get(ExifTags.Base.DateTimeOriginal)
                or exif.get(ExifTags.Base.DateTime),
                sub.get(ExifTags.Base.OffsetTimeOriginal),
            ),
        )

        if result == ExifData():
            return None
        return result

    def generate_thumbnail(self, data: bytes, max_size: int) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img = ImageOps.exif_transpose(img)
                if img.mode not in ("RGB", "L"):
                    img = img.convert("RGB")
                img.thumbnail((max_size, max_size))
                out = io.BytesIO()
                img.save(out, "JPEG", quality=THUMBNAIL_QUALITY)
                return out.getvalue()
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise ImageProcessingError(
                f"Failed to generate thumbnail: {exc}"
            ) from exc


# ---------------------------------------------------------------------------
# EXIF value helpers
# ---------------------------------------------------------------------------


def _clean_str(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip("\x00 ").strip()
    return text or None


def _to_float(value) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _format_shutter(seconds: float | None) -> str | None:
    if not seconds or seconds <= 0:
        return None
    if seconds >= 1:
        return f"{seconds:g}"
    return f"1/{round(1 / seconds)}"


def _gps_coordinate(dms, ref, negative_ref: str) -> float | None:
    if not dms or len(dms) != 3:
        return None
    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60 + seconds / 3600
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="ignore")
    if ref and str(ref).strip().upper() == negative_ref:
        value = -value
    return round(value, 7)


def _gps_altitude(value, ref) -> float | None:
    altitude = _to_float(value)
    if altitude is None:
        return None
    if isinstance(ref, bytes):
        ref = ref[0] if ref else 0
    # Reference 1 means below sea level
    return -altitude if ref == 1 else altitude


def _parse_exif_datetime(value, offset) -> datetime | None:
    """Parse an EXIF timestamp.

    EXIF stores local wall-clock time; ``OffsetTimeOriginal`` (e.g.
    ``"+09:00"``) is applied when present, otherwise UTC is assumed.
    """
    text = _clean_str(value)
    if not text:
        return None
    try:
        parsed = datetime.strptime(text, EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.debug("Unparseable EXIF datetime: %r", text)
        return None

    tz = timezone.utc
    offset_text = _clean_str(offset)
    if offset_text and len(offset_text) == 6 and offset_text[0] in "+-":
        try:
            hours, minutes = int(offset_text[1:3]), int(offset_text[4:6])
        except ValueError:
            pass
        else:
            delta = timedelta(hours=hours, minutes=minutes)
            tz = timezone(delta if offset_text[0] == "+" else -delta)
    return parsed.replace(tzinfo=tz)
