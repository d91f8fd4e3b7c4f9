"""HTTP client for the photo storage server API.

Non-2xx replies and transport failures are translated into the
``photo_backup.errors`` taxonomy, so callers handle one set of
exceptions whether the server refused a request or could not be reached.
"""

import logging
import threading
from typing import Any
from uuid import UUID

import requests

from ..config import ClientConfig
from ..errors import (
    DuplicateError,
    InvalidRequestError,
    NetworkUnavailableError,
    NotFoundError,
    ServerError,
)
from ..models import (
    HealthResponse,
    PaginatedPhotos,
    Photo,
    PhotoUploadResponse,
)

logger = logging.getLogger(__name__)


class PhotoClient:
    """HTTP client for the photo storage server.

    One ``requests.Session`` is kept per thread, since the sync engine
    calls the client from worker threads.
    """

    def __init__(self, config: ClientConfig):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_base_url

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.headers["Accept"] = "application/json"
            self._thread_local.session = session
        return self._thread_local.session

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Send a request and translate failures into the error taxonomy.
        """
        url = f"{self.base_url}/{endpoint}"
        kwargs.setdefault("timeout", (10, self.config.request_timeout))
        try:
            response = self._get_session().request(method, url, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise NetworkUnavailableError(
                f"Cannot reach server at {self.config.server_url}: {exc}"
            ) from exc

        if response.ok:
            return response

        body = self._error_body(response)
        reason = body.get("reason")
        match response.status_code:
            case 400:
                raise InvalidRequestError(reason or "Bad request")
            case 404:
                raise NotFoundError(reason or "Resource not found")
            case 409:
                existing = body.get("existingId")
                raise DuplicateError(UUID(existing) if existing else None)
            case status:
                raise ServerError(status, reason)

    @staticmethod
    def _error_body(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def health_check(self) -> HealthResponse:
        """
        Call GET /health.

        Raises:
            ServerError: The reply is not a health document (a captive
                portal or a wrong ``server_url``).
        """
        response = self._request("GET", "health")
        try:
            return HealthResponse.model_validate(response.json())
        except ValueError as exc:
            raise ServerError(
                response.status_code, f"Unexpected health response: {exc}"
            ) from exc

    def list_photos(
        self,
        page: int = 1,
        per_page: int = 20,
        sort_by: str = "createdAt",
        order: str = "desc",
        year: int | None = None,
        month: int | None = None,
    ) -> PaginatedPhotos:
        """
        Fetch one page of the server's photo listing.
        """
        params: dict[str, Any] = {
            "page": page,
            "perPage": per_page,
            "sortBy": sort_by,
            "order": order,
        }
        if year is not None:
            params["year"] = year
        if month is not None:
            params["month"] = month

        response = self._request("GET", "photos", params=params)
        return PaginatedPhotos.model_validate(response.json())

    def get_photo(self, photo_id: UUID) -> Photo:
        response = self._request("GET", f"photos/{photo_id}")
        return Photo.model_validate(response.json())

    def download_photo(self, photo_id: UUID) -> bytes:
        response = self._request("GET", f"photos/{photo_id}/download")
        return response.content

    def get_thumbnail(self, photo_id: UUID) -> bytes:
        response = self._request("GET", f"photos/{photo_id}/thumbnail")
        return response.content

    def upload_photo(
        self, data: bytes, filename: str, mime_type: str
    ) -> PhotoUploadResponse:
        """
        Upload one photo as multipart/form-data (field ``file``).

        Args:
            data: Raw file bytes
            filename: Original filename
            mime_type: Content type of the file

        Returns:
            The server's upload response with the stored photo

        Raises:
            DuplicateError: If the server already holds identical content
            InvalidRequestError: If the server rejected the file
            NetworkUnavailableError: If the server cannot be reached
        """
        files = {"file": (filename, data, mime_type)}
        response = self._request("POST", "photos", files=files)
        logger.debug("Uploaded %s (%d bytes)", filename, len(data))
        return PhotoUploadResponse.model_validate(response.json())

    def delete_photo(self, photo_id: UUID) -> None:
        self._request("DELETE", f"photos/{photo_id}")
