"""Runtime configuration for the storage server and the sync client.

Reads settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Server environment variables:
    PHOTO_STORAGE_PATH: Base directory for originals, thumbnails and metadata
        (default: /app/data)
    PHOTO_SERVER_HOST: Bind address (default: 0.0.0.0)
    PHOTO_SERVER_PORT: Bind port (default: 8080)
    PHOTO_METADATA_BACKEND: "json" or "sqlite" (default: json)
    PHOTO_MAX_PARALLEL_UPLOADS: Max concurrent ingests (default: 4)
    PHOTO_RECONCILE_ON_STARTUP: Sweep orphan files at startup (default: false)

Client environment variables:
    PHOTO_BACKUP_SERVER_URL: Server base URL, e.g. http://192.168.1.10:8080 (required)
    PHOTO_BACKUP_LIBRARY: Directory holding the local photo library (required)
    PHOTO_BACKUP_LEDGER: Upload ledger file (default: ~/.photo_backup/uploaded_photos.json)
    PHOTO_BACKUP_WIFI_ONLY: Only sync on an unmetered connection (default: true)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = "/app/data"
DEFAULT_LEDGER_PATH = "~/.photo_backup/uploaded_photos.json"
METADATA_BACKENDS = ("json", "sqlite")


@dataclass
class ServerConfig:
    storage_path: str = DEFAULT_STORAGE_PATH
    host: str = "0.0.0.0"
    port: int = 8080
    metadata_backend: str = "json"
    thumbnail_max_size: int = 300
    max_upload_bytes: int = 50 * 1024 * 1024
    max_parallel_uploads: int = 4
    reconcile_on_startup: bool = False
    debug: bool = False

    @property
    def photos_path(self) -> Path:
        return Path(self.storage_path) / "photos" / "originals"

    @property
    def thumbnails_path(self) -> Path:
        return Path(self.storage_path) / "thumbnails"

    @property
    def metadata_file(self) -> Path:
        return Path(self.storage_path) / "metadata.json"

    @property
    def database_file(self) -> Path:
        return Path(self.storage_path) / "metadata.db"


@dataclass
class ClientConfig:
    server_url: str
    library_path: str
    ledger_path: str = DEFAULT_LEDGER_PATH
    wifi_only: bool = True
    background_batch_limit: int = 50
    recent_outcomes_capacity: int = 50
    request_timeout: float = 60.0
    poll_interval: float = 30.0
    debug: bool = False

    @property
    def api_base_url(self) -> str:
        return f"{self.server_url}/api/v1"


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    """Return a bounded int from env var, or None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def validate_server_config(config: ServerConfig) -> None:
    """Validate server configuration values.

    Raises:
        ValueError: If the storage path is empty, the port is out of
            range, or the metadata backend is unknown.
    """
    config.storage_path = config.storage_path.strip()
    if not config.storage_path:
        raise ValueError(
            "Storage path cannot be empty. Set PHOTO_STORAGE_PATH environment variable."
        )

    if not (1 <= config.port <= 65535):
        raise ValueError(
            f"Invalid port {config.port}: must be between 1 and 65535"
        )

    if config.metadata_backend not in METADATA_BACKENDS:
        raise ValueError(
            f"Invalid metadata backend '{config.metadata_backend}': "
            f"must be one of {', '.join(METADATA_BACKENDS)}"
        )

    if config.thumbnail_max_size < 16:
        raise ValueError(
            f"Invalid thumbnail size {config.thumbnail_max_size}: must be at least 16"
        )

    if config.max_upload_bytes < 1:
        raise ValueError("Maximum upload size must be positive")


def validate_client_config(config: ClientConfig) -> None:
    """Validate client configuration values and normalise the server URL.

    Raises:
        ValueError: If the server URL is malformed or the library path
            is empty.
    """
    config.server_url = config.server_url.strip()

    if not config.server_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid server URL '{config.server_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.server_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid server URL '{config.server_url}': URL must include a hostname"
        )

    config.server_url = config.server_url.removesuffix("/")
    # Accept URLs that already carry the API prefix
    config.server_url = config.server_url.removesuffix("/api/v1")

    if not config.library_path.strip():
        raise ValueError(
            "Library path cannot be empty. Set PHOTO_BACKUP_LIBRARY environment variable."
        )

    if config.background_batch_limit < 1:
        raise ValueError("Background batch limit must be at least 1")

    if config.recent_outcomes_capacity < 1:
        raise ValueError("Recent outcomes capacity must be at least 1")


def load_server_config(
    storage_path: str | None = None,
    host: str | None = None,
    port: int | None = None,
    metadata_backend: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> ServerConfig:
    """Load server configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        storage_path: Override storage base directory (CLI).
        host: Override bind address (CLI).
        port: Override bind port (CLI).
        metadata_backend: Override metadata backend (CLI).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Values from the YAML ``server`` section.

    Returns:
        Validated ServerConfig instance.
    """
    fb = yaml_fallbacks or {}

    final_storage = (
        storage_path
        or os.getenv("PHOTO_STORAGE_PATH")
        or fb.get("storage_path")
        or DEFAULT_STORAGE_PATH
    )
    final_host = (
        host or os.getenv("PHOTO_SERVER_HOST") or fb.get("host") or "0.0.0.0"
    )

    if port is not None:
        final_port = port
    else:
        env_port = _get_int_env("PHOTO_SERVER_PORT", 1, 65535)
        final_port = env_port if env_port is not None else int(fb.get("port", 8080))

    final_backend = (
        metadata_backend
        or os.getenv("PHOTO_METADATA_BACKEND")
        or fb.get("metadata_backend")
        or "json"
    ).lower()

    env_parallel = _get_int_env("PHOTO_MAX_PARALLEL_UPLOADS", 1, 64)
    if env_parallel is not None:
        final_parallel = env_parallel
    else:
        final_parallel = int(fb.get("max_parallel_uploads", 4))

    env_reconcile = _get_bool_env("PHOTO_RECONCILE_ON_STARTUP")
    if env_reconcile is not None:
        final_reconcile = env_reconcile
    else:
        final_reconcile = bool(fb.get("reconcile_on_startup", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("PHOTO_DEBUG")
        final_debug = env_debug if env_debug is not None else bool(fb.get("debug", False))

    config = ServerConfig(
        storage_path=final_storage,
        host=final_host,
        port=final_port,
        metadata_backend=final_backend,
        thumbnail_max_size=int(fb.get("thumbnail_max_size", 300)),
        max_upload_bytes=int(fb.get("max_upload_bytes", 50 * 1024 * 1024)),
        max_parallel_uploads=final_parallel,
        reconcile_on_startup=final_reconcile,
        debug=final_debug,
    )

    validate_server_config(config)

    return config


def load_client_config(
    server_url: str | None = None,
    library_path: str | None = None,
    ledger_path: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> ClientConfig:
    """Load sync client configuration with unified precedence.

    Args:
        server_url: Override server URL (CLI).
        library_path: Override library directory (CLI).
        ledger_path: Override ledger file path (CLI).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Values from the YAML ``client`` section.

    Returns:
        Validated ClientConfig instance.

    Raises:
        ValueError: If the server URL or library path is missing after
            checking all sources.
    """
    fb = yaml_fallbacks or {}

    final_url = (
        server_url or os.getenv("PHOTO_BACKUP_SERVER_URL") or fb.get("server_url")
    )
    if not final_url:
        raise ValueError(
            "Server URL not found. Set PHOTO_BACKUP_SERVER_URL environment variable, "
            "pass --server CLI argument, or add 'server_url' to config.yml."
        )

    final_library = (
        library_path or os.getenv("PHOTO_BACKUP_LIBRARY") or fb.get("library_path")
    )
    if not final_library:
        raise ValueError(
            "Library path not found. Set PHOTO_BACKUP_LIBRARY environment variable, "
            "pass --library CLI argument, or add 'library_path' to config.yml."
        )

    final_ledger = (
        ledger_path
        or os.getenv("PHOTO_BACKUP_LEDGER")
        or fb.get("ledger_path")
        or DEFAULT_LEDGER_PATH
    )

    env_wifi = _get_bool_env("PHOTO_BACKUP_WIFI_ONLY")
    if env_wifi is not None:
        final_wifi = env_wifi
    else:
        final_wifi = bool(fb.get("wifi_only", True))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("PHOTO_DEBUG")
        final_debug = env_debug if env_debug is not None else bool(fb.get("debug", False))

    config = ClientConfig(
        server_url=final_url,
        library_path=str(Path(final_library).expanduser()),
        ledger_path=str(Path(final_ledger).expanduser()),
        wifi_only=final_wifi,
        background_batch_limit=int(fb.get("background_batch_limit", 50)),
        recent_outcomes_capacity=int(fb.get("recent_outcomes_capacity", 50)),
        request_timeout=float(fb.get("request_timeout", 60.0)),
        poll_interval=float(fb.get("poll_interval", 30.0)),
        debug=final_debug,
    )

    validate_client_config(config)

    return config
