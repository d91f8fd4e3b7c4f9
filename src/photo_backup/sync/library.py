"""Local photo library access.

``PhotoLibrary`` is the collaborator the sync engine enumerates and
exports from.  ``FolderPhotoLibrary`` treats a directory tree of image
files as the library: the asset id is the file's POSIX path relative to
the root, and creation time is the file's modification time.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ..errors import AccessDeniedError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".webp": "image/webp",
}


@dataclass(frozen=True)
class LocalAsset:
    """One photo in the local library."""

    id: str
    created_at: datetime
    mime_type: str
    filename: str


@dataclass(frozen=True)
class ExportedAsset:
    """Raw bytes of an asset, ready for upload."""

    data: bytes
    filename: str
    mime_type: str


class PhotoLibrary(ABC):
    """Source of local photos."""

    @abstractmethod
    def request_authorization(self) -> None:
        """Ensure the library may be read.

        Raises:
            AccessDeniedError: If access is refused.
        """

    @abstractmethod
    def fetch_assets(self) -> list[LocalAsset]:
        """Return every photo asset, newest first."""

    @abstractmethod
    def export_asset(self, asset: LocalAsset) -> ExportedAsset:
        """Read the asset's original bytes."""


class FolderPhotoLibrary(PhotoLibrary):
    """A directory of image files used as the photo library.

    Hidden files and directories (leading ``.``) are ignored, as are
    files whose extension is not a supported image type.

    Args:
        root: Library directory.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    def request_authorization(self) -> None:
        if not self.root.is_dir():
            raise AccessDeniedError(
                f"Photo library not found: {self.root}"
            )
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise AccessDeniedError(
                f"Photo library access denied: {self.root}"
            )

    def fetch_assets(self) -> list[LocalAsset]:
        self.request_authorization()

        assets: list[tuple[float, LocalAsset]] = []
        try:
            for dirpath, dirnames, filenames in os.walk(self.root):
                dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
                for name in filenames:
                    if name.startswith("."):
                        continue
                    mime_type = MIME_BY_EXTENSION.get(Path(name).suffix.lower())
                    if mime_type is None:
                        continue
                    path = Path(dirpath) / name
                    try:
                        mtime = path.stat().st_mtime
                    except FileNotFoundError:
                        continue
                    asset = LocalAsset(
                        id=path.relative_to(self.root).as_posix(),
                        created_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
                        mime_type=mime_type,
                        filename=name,
                    )
                    assets.append((mtime, asset))
        except PermissionError as exc:
            raise AccessDeniedError(
                f"Photo library access denied: {exc}"
            ) from exc

        # Newest first; ties resolved by id for a deterministic order
        assets.sort(key=lambda item: item[1].id)
        assets.sort(key=lambda item: item[0], reverse=True)
        logger.debug("Enumerated %d assets under %s", len(assets), self.root)
        return [asset for _, asset in assets]

    def export_asset(self, asset: LocalAsset) -> ExportedAsset:
        path = self.root / asset.id
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Asset no longer exists: {asset.id}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to export {asset.id}: {exc}") from exc
        return ExportedAsset(
            data=data, filename=asset.filename, mime_type=asset.mime_type
        )
