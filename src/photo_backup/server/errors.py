"""HTTP error responses for the storage server.

Domain exceptions are mapped to status codes here and nowhere else.
Every error body has the same shape::

    {"error": true, "reason": "<message>"}

Duplicate responses additionally carry ``existingId`` so the client can
record which stored photo already holds the content.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import DuplicateError, PhotoBackupError

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_TYPE: dict[str, int] = {
    "not_found": 404,
    "invalid_request": 400,
    "duplicate": 409,
    "storage_error": 500,
    "image_processing_error": 500,
}


def status_for(error: PhotoBackupError) -> int:
    """Return the HTTP status for a domain error (500 when unmapped)."""
    return STATUS_BY_ERROR_TYPE.get(error.error_type, 500)


def build_error_response(
    status_code: int, reason: str, **extra: Any
) -> JSONResponse:
    """Build the JSON error body used by every failing endpoint.

    Args:
        status_code: HTTP status to send
        reason: Human-readable description
        **extra: Additional camelCase fields merged into the body

    Returns:
        JSONResponse with ``{"error": true, "reason": ...}``
    """
    body: dict[str, Any] = {"error": True, "reason": reason}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


async def handle_photo_backup_error(
    request: Request, exc: PhotoBackupError
) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.message
        )
    else:
        logger.debug(
            "%s %s -> %d: %s",
            request.method,
            request.url.path,
            status_code,
            exc.message,
        )

    if isinstance(exc, DuplicateError) and exc.existing_id is not None:
        return build_error_response(
            status_code, exc.message, existingId=str(exc.existing_id)
        )
    return build_error_response(status_code, exc.message)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed query parameters or a missing upload part -> 400."""
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        details.append(f"{location}: {error.get('msg', 'invalid')}")
    reason = "Invalid request: " + "; ".join(details) if details else "Invalid request"
    return build_error_response(400, reason)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PhotoBackupError, handle_photo_backup_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
