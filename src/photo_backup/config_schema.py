"""Unified configuration schema for photo_backup.

Defines Pydantic models for the YAML config structure with dedicated
sections for the storage server, the sync client, and logging.

Usage:
    from photo_backup.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = section_fallbacks(unified.server)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ServerSection(BaseModel):
    """Storage server settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    storage_path: str | None = Field(
        default=None, description="Base directory for photos and metadata"
    )
    host: str | None = Field(default=None, description="Bind address")
    port: int | None = Field(
        default=None, ge=1, le=65535, description="Bind port"
    )
    metadata_backend: Literal["json", "sqlite"] | None = Field(
        default=None, description="Metadata store backend"
    )
    thumbnail_max_size: int = Field(
        default=300,
        ge=16,
        le=4096,
        description="Longest thumbnail edge in pixels",
    )
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        ge=1,
        description="Maximum accepted upload size in bytes",
    )
    max_parallel_uploads: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum concurrent ingests (1-64)",
    )
    reconcile_on_startup: bool = Field(
        default=False,
        description="Remove files that have no metadata record at startup",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class ClientSection(BaseModel):
    """Sync client settings."""

    server_url: str | None = Field(
        default=None, description="Server base URL"
    )
    library_path: str | None = Field(
        default=None, description="Local photo library directory"
    )
    ledger_path: str | None = Field(
        default=None, description="Upload ledger file"
    )
    wifi_only: bool = Field(
        default=True, description="Only sync on an unmetered connection"
    )
    background_batch_limit: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Items processed per background run",
    )
    recent_outcomes_capacity: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Size of the recent upload outcomes buffer",
    )
    request_timeout: float = Field(
        default=60.0, gt=0, description="HTTP request timeout in seconds"
    )
    poll_interval: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between library change polls",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    server: ServerSection = Field(default_factory=ServerSection)
    client: ClientSection = Field(default_factory=ClientSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def section_fallbacks(section: BaseModel) -> dict:
    """Return the non-None values of a config section.

    The result is passed as ``yaml_fallbacks`` to ``load_server_config``
    or ``load_client_config``.
    """
    return {
        k: v for k, v in section.model_dump().items() if v is not None
    }
