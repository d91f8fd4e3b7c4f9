"""Photo storage server: ingestion, metadata persistence and HTTP API."""

from .app import create_app
from .storage import PhotoStorageEngine, ReconcileReport

__all__ = ["PhotoStorageEngine", "ReconcileReport", "create_app"]
