"""Command-line entry point for the photo storage server."""

import argparse
import logging
import sys
from typing import Any

import uvicorn
from dotenv import load_dotenv

from .. import __version__
from ..config import METADATA_BACKENDS, ServerConfig, load_server_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config, section_fallbacks
from ..logger import setup_logging
from .app import create_app

logger = logging.getLogger(__name__)


def load_config_from_sources(
    overrides: dict[str, Any] | None = None,
) -> tuple[ServerConfig, str | None]:
    """Merge CLI overrides, env vars, .env and YAML into a ServerConfig.

    Returns:
        Tuple of (config, log file from the YAML ``logging`` section)
    """
    # .env first so YAML ${VAR} interpolation can see its values
    load_dotenv()

    yaml_fallbacks: dict[str, Any] | None = None
    yaml_log_file = None
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        yaml_fallbacks = section_fallbacks(unified.server)
        yaml_log_file = unified.logging.file
        logger.info("Config file: %s", config_files[0])

    overrides = overrides or {}
    config = load_server_config(
        storage_path=overrides.get("storage_path"),
        host=overrides.get("host"),
        port=overrides.get("port"),
        metadata_backend=overrides.get("metadata_backend"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )
    return config, yaml_log_file


def run() -> None:
    """Entry point: parse CLI arguments and serve with uvicorn."""
    parser = argparse.ArgumentParser(
        description="Home Photo Backup storage server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve from the default storage path (/app/data)
  photo-backup-server

  # Custom storage directory and port
  photo-backup-server --storage-path ~/photos --port 9000

  # SQLite metadata instead of a JSON file
  photo-backup-server --metadata-backend sqlite
        """,
    )
    parser.add_argument("--host", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Bind port (default: 8080)")
    parser.add_argument(
        "--storage-path",
        help="Base directory for originals, thumbnails and metadata",
    )
    parser.add_argument(
        "--metadata-backend",
        choices=METADATA_BACKENDS,
        help="Metadata store backend (default: json)",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"photo-backup-server version {__version__}",
    )
    args = parser.parse_args()

    overrides = {
        "host": args.host,
        "port": args.port,
        "storage_path": args.storage_path,
        "metadata_backend": args.metadata_backend,
        "debug": args.debug,
    }

    try:
        config, yaml_log_file = load_config_from_sources(overrides)
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        mode="server",
        debug=config.debug,
        log_file=args.log_file or yaml_log_file,
    )
    logger.info(
        "Starting photo-backup-server %s on %s:%d",
        __version__,
        config.host,
        config.port,
    )

    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    run()
