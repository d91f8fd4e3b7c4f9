"""
Input validation for uploads and photo identifiers.

Validators return ``(is_valid, error_message)`` tuples; the HTTP layer
turns a failed check into an ``InvalidRequestError`` (400).
"""

from uuid import UUID

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/heic",
        "image/heif",
        "image/webp",
    }
)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Filename")
        reason: Description of validation failure (e.g., "is required")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_mime_type(mime_type: str | None) -> tuple[bool, str]:
    """Check that *mime_type* is one of the accepted image types."""
    normalized = (mime_type or "application/octet-stream").lower()
    if normalized not in ALLOWED_MIME_TYPES:
        return (
            False,
            f"Unsupported file type: {normalized}. "
            "Allowed types: jpeg, png, heic, webp",
        )
    return (True, "")


def validate_upload_size(size: int, max_size: int = MAX_UPLOAD_BYTES) -> tuple[bool, str]:
    """Check that an upload of *size* bytes fits under *max_size*."""
    if size > max_size:
        return (
            False,
            format_validation_error(
                "File", f"too large. Maximum size is {max_size // (1024 * 1024)}MB"
            ),
        )
    return (True, "")


def validate_upload(
    filename: str | None,
    mime_type: str | None,
    size: int,
    max_size: int = MAX_UPLOAD_BYTES,
) -> tuple[bool, str]:
    """
    Validate an uploaded photo before ingestion.

    Args:
        filename: Client-supplied original filename
        mime_type: Content type of the uploaded part
        size: Body size in bytes
        max_size: Maximum accepted size in bytes (default: 50 MB)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules (checked in this order):
        - MIME type must be jpeg, png, heic/heif or webp
        - Size cannot exceed max_size
        - Filename cannot be empty
    """
    ok, reason = validate_mime_type(mime_type)
    if not ok:
        return (False, reason)

    ok, reason = validate_upload_size(size, max_size)
    if not ok:
        return (False, reason)

    if not filename or not filename.strip():
        return (False, format_validation_error("Filename", "is required"))

    return (True, "")


def parse_photo_id(raw: str) -> UUID | None:
    """Parse a photo id, returning ``None`` when it is not a valid UUID."""
    try:
        return UUID(raw)
    except (ValueError, AttributeError, TypeError):
        return None
