"""Core functionality shared between the sync client and the server."""

from .async_utils import run_sync
from .checksum import compute_checksum
from .client import PhotoClient

__all__ = ["PhotoClient", "compute_checksum", "run_sync"]
