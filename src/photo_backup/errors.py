"""Error taxonomy shared by the sync client and the storage server.

Every failure the system reports is a ``PhotoBackupError`` subclass
tagged with an ``error_type`` string.  The tag is what crosses process
boundaries: the server maps it to an HTTP status once, in the API layer,
and the client maps the status back to the same exception class.

| error_type               | HTTP |
|--------------------------|------|
| ``access_denied``        | --   |
| ``network_unavailable``  | --   |
| ``not_found``            | 404  |
| ``invalid_request``      | 400  |
| ``duplicate``            | 409  |
| ``storage_error``        | 500  |
| ``image_processing_error`` | 500 |
"""

from __future__ import annotations

from uuid import UUID


class PhotoBackupError(Exception):
    """Base class for all photo backup errors."""

    error_type = "server_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AccessDeniedError(PhotoBackupError):
    """The photo library (or other source) refused access."""

    error_type = "access_denied"

    def __init__(self, message: str = "Photo library access denied") -> None:
        super().__init__(message)


class NetworkUnavailableError(PhotoBackupError):
    """The server could not be reached."""

    error_type = "network_unavailable"

    def __init__(self, message: str = "Network unavailable") -> None:
        super().__init__(message)


class NotFoundError(PhotoBackupError):
    error_type = "not_found"


class PhotoNotFoundError(NotFoundError):
    def __init__(self, message: str = "Photo not found") -> None:
        super().__init__(message)


class ThumbnailNotFoundError(NotFoundError):
    def __init__(self, message: str = "Thumbnail not found") -> None:
        super().__init__(message)


class DuplicateError(PhotoBackupError):
    """Content with the same checksum is already stored.

    Attributes:
        existing_id: Id of the record that already holds the content,
            when known.
    """

    error_type = "duplicate"

    def __init__(self, existing_id: UUID | None = None) -> None:
        if existing_id is None:
            message = "Photo already exists"
        else:
            message = f"Photo already exists with id: {existing_id}"
        super().__init__(message)
        self.existing_id = existing_id


class InvalidRequestError(PhotoBackupError):
    error_type = "invalid_request"


class StorageError(PhotoBackupError):
    """Filesystem and metadata disagree, or a storage write failed."""

    error_type = "storage_error"


class ImageProcessingError(PhotoBackupError):
    error_type = "image_processing_error"

    def __init__(self, message: str) -> None:
        super().__init__(f"Image processing failed: {message}")


class ServerError(PhotoBackupError):
    """Unexpected HTTP status from the server (client side only)."""

    error_type = "server_error"

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"Server error ({status_code})")
        self.status_code = status_code
