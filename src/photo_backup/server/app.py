"""FastAPI application for the photo storage server.

All routes live under ``/api/v1``.  Handlers are thin: they validate
input, push the blocking storage call onto a worker thread, and shape
the response.  Shared state (config and the storage engine) hangs off
``request.app.state``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, FastAPI, File, Query, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel

from .. import __version__
from ..config import ServerConfig
from ..core.async_utils import init_semaphore, run_sync, run_sync_limited
from ..errors import InvalidRequestError
from ..models import (
    HealthResponse,
    PaginatedPhotos,
    PaginationInfo,
    PhotoSortBy,
    PhotoUploadResponse,
    SortOrder,
)
from ..validators import (
    parse_photo_id,
    validate_mime_type,
    validate_upload,
    validate_upload_size,
)
from .errors import build_error_response, register_error_handlers
from .image_analysis import PillowImageAnalyzer
from .metadata_store import create_metadata_store
from .storage import DEFAULT_PER_PAGE, PhotoStorageEngine, clamp_per_page

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DOWNLOAD_CACHE_CONTROL = "private, max-age=31536000"
THUMBNAIL_CACHE_CONTROL = "public, max-age=86400"
UPLOAD_CHUNK_SIZE = 1024 * 1024
# Room for multipart boundaries and part headers on top of the file itself
MULTIPART_OVERHEAD = 64 * 1024

router = APIRouter(prefix=API_PREFIX)


def build_storage_engine(config: ServerConfig) -> PhotoStorageEngine:
    """Wire the metadata store and the Pillow analyzer into an engine."""
    return PhotoStorageEngine(
        config=config,
        metadata_store=create_metadata_store(config),
        analyzer=PillowImageAnalyzer(),
    )


def create_app(
    config: ServerConfig, storage: PhotoStorageEngine | None = None
) -> FastAPI:
    """Create the server application.

    Args:
        config: Validated server configuration
        storage: Pre-built engine (tests); built from *config* when omitted

    Returns:
        FastAPI app with routes and error handlers installed
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_engine = storage is None
        engine = storage or build_storage_engine(config)
        engine.ensure_directories()
        init_semaphore(config.max_parallel_uploads)

        if config.reconcile_on_startup:
            await run_sync(engine.reconcile_orphans)

        app.state.storage = engine
        logger.info(
            "Photo server ready (storage=%s, backend=%s)",
            config.storage_path,
            config.metadata_backend,
        )
        yield

        if owns_engine:
            engine.metadata_store.close()
        logger.info("Photo server shutting down")

    app = FastAPI(
        title="Home Photo Backup",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    @app.middleware("http")
    async def limit_upload_body(request: Request, call_next):
        # Refuse oversize uploads before the multipart parser spools them
        if request.method == "POST" and request.url.path == f"{API_PREFIX}/photos":
            declared = request.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > (
                config.max_upload_bytes + MULTIPART_OVERHEAD
            ):
                _, reason = validate_upload_size(
                    int(declared), config.max_upload_bytes
                )
                logger.debug("Upload refused before parsing: %s bytes", declared)
                return build_error_response(400, reason)
        return await call_next(request)

    register_error_handlers(app)
    app.include_router(router)
    return app


def _engine(request: Request) -> PhotoStorageEngine:
    return request.app.state.storage


def _json(model: BaseModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True),
    )


def _require_id(raw: str) -> UUID:
    photo_id = parse_photo_id(raw)
    if photo_id is None:
        raise InvalidRequestError("Invalid photo ID")
    return photo_id


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an uploaded part, stopping as soon as it exceeds *max_bytes*.

    The size reported by the multipart parser is checked first; the part
    is then read in chunks so an oversize body is never held in memory.

    Raises:
        InvalidRequestError: The part is larger than *max_bytes*.
    """
    if file.size is not None:
        ok, reason = validate_upload_size(file.size, max_bytes)
        if not ok:
            raise InvalidRequestError(reason)

    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        ok, reason = validate_upload_size(total, max_bytes)
        if not ok:
            raise InvalidRequestError(reason)
        chunks.append(chunk)
    return b"".join(chunks)


def _content_disposition(filename: str) -> str:
    safe = filename.replace("\\", "_").replace('"', "_")
    try:
        safe.encode("latin-1")
    except UnicodeEncodeError:
        fallback = safe.encode("ascii", "replace").decode("ascii").replace("?", "_")
        return (
            f'attachment; filename="{fallback}"; '
            f"filename*=utf-8''{quote(filename)}"
        )
    return f'attachment; filename="{safe}"'


# -- Health ------------------------------------------------------------------


@router.get("/health")
async def health(request: Request):
    """Liveness plus a storage-path existence check."""
    available = await run_sync(_engine(request).is_storage_available)
    return _json(
        HealthResponse(
            status="healthy" if available else "degraded",
            version=__version__,
            storage_available=available,
        )
    )


# -- Photos ------------------------------------------------------------------


@router.get("/photos")
async def list_photos(
    request: Request,
    page: int = 1,
    per_page: int = Query(DEFAULT_PER_PAGE, alias="perPage"),
    sort_by: str = Query(PhotoSortBy.CREATED_AT.value, alias="sortBy"),
    order: str = SortOrder.DESC.value,
    year: int | None = None,
    month: int | None = None,
):
    """Paginated listing; unknown ``sortBy``/``order`` values fall back
    to ``createdAt``/``desc``."""
    try:
        sort_key = PhotoSortBy(sort_by)
    except ValueError:
        sort_key = PhotoSortBy.CREATED_AT
    try:
        sort_order = SortOrder(order.lower())
    except ValueError:
        sort_order = SortOrder.DESC

    page = max(1, page)
    engine = _engine(request)
    photos, total = await run_sync(
        engine.list_photos,
        page=page,
        per_page=per_page,
        sort_by=sort_key,
        order=sort_order,
        year=year,
        month=month,
    )
    per_page = clamp_per_page(per_page)
    return _json(
        PaginatedPhotos(
            data=photos,
            pagination=PaginationInfo.build(page, per_page, total),
        )
    )


@router.post("/photos")
async def upload_photo(request: Request, file: UploadFile = File(...)):
    config: ServerConfig = request.app.state.config
    filename = (file.filename or "").strip()
    mime_type = (file.content_type or "application/octet-stream").lower()

    ok, reason = validate_mime_type(mime_type)
    if not ok:
        raise InvalidRequestError(reason)
    data = await read_upload(file, config.max_upload_bytes)

    ok, reason = validate_upload(
        filename, mime_type, len(data), config.max_upload_bytes
    )
    if not ok:
        raise InvalidRequestError(reason)

    photo = await run_sync_limited(
        _engine(request).upload_photo, filename, data, mime_type
    )
    return _json(PhotoUploadResponse(photo=photo))


@router.get("/photos/{photo_id}")
async def get_photo(photo_id: str, request: Request):
    photo = await run_sync(_engine(request).get_photo, _require_id(photo_id))
    return _json(photo)


@router.get("/photos/{photo_id}/download")
async def download_photo(photo_id: str, request: Request):
    """Stream the original with long-lived private caching."""
    engine = _engine(request)
    uid = _require_id(photo_id)
    record = await run_sync(engine.get_record, uid)
    path = await run_sync(engine.get_photo_file_path, uid)
    return FileResponse(
        path,
        media_type=record.mime_type,
        headers={
            "Content-Disposition": _content_disposition(record.original_filename),
            "ETag": f'"{record.checksum}"',
            "Cache-Control": DOWNLOAD_CACHE_CONTROL,
        },
    )


@router.get("/photos/{photo_id}/thumbnail")
async def get_thumbnail(photo_id: str, request: Request):
    engine = _engine(request)
    uid = _require_id(photo_id)
    record = await run_sync(engine.get_record, uid)
    path = await run_sync(engine.get_thumbnail_file_path, uid)
    return FileResponse(
        path,
        media_type="image/jpeg",
        headers={
            "ETag": f'"{record.checksum}-thumb"',
            "Cache-Control": THUMBNAIL_CACHE_CONTROL,
        },
    )


@router.delete("/photos/{photo_id}")
async def delete_photo(photo_id: str, request: Request):
    await run_sync(_engine(request).delete_photo, _require_id(photo_id))
    return Response(status_code=204)
