"""Command-line entry point for the sync client (``photo-backup``)."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any

from dotenv import load_dotenv

from .. import __version__
from ..config import ClientConfig, load_client_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config, section_fallbacks
from ..core.async_utils import run_sync
from ..errors import PhotoBackupError
from ..logger import setup_logging
from .background import BackgroundSyncJob
from .engine import SyncEngine, create_sync_engine
from .models import SyncReport, SyncStatus

logger = logging.getLogger(__name__)


def load_config_from_sources(
    overrides: dict[str, Any] | None = None,
) -> tuple[ClientConfig, str | None]:
    """Merge CLI overrides, env vars, .env and YAML into a ClientConfig."""
    load_dotenv()

    yaml_fallbacks: dict[str, Any] | None = None
    yaml_log_file = None
    if discover_config_files():
        unified = build_config(load_hierarchical_config())
        yaml_fallbacks = section_fallbacks(unified.client)
        yaml_log_file = unified.logging.file

    overrides = overrides or {}
    config = load_client_config(
        server_url=overrides.get("server_url"),
        library_path=overrides.get("library_path"),
        ledger_path=overrides.get("ledger_path"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )
    return config, yaml_log_file


def _print_report(report: SyncReport | None) -> int:
    if report is None:
        print("A sync pass is already running; nothing to do.")
        return 0
    print(report.summary())
    if report.status in (
        SyncStatus.WAITING_FOR_NETWORK,
        SyncStatus.WAITING_FOR_WIFI,
    ):
        print(f"Not synced: {report.status.value}")
        return 2
    if report.status == SyncStatus.ERROR or report.failed:
        for outcome in report.failed:
            print(f"  failed: {outcome.local_asset_id}: {outcome.error}")
        return 1
    return 0


async def _cmd_sync(engine: SyncEngine, args: argparse.Namespace) -> int:
    return _print_report(await engine.trigger_sync())


async def _cmd_background(engine: SyncEngine, args: argparse.Namespace) -> int:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, cancel_event.set)
    except NotImplementedError:
        logger.debug("SIGTERM handler not supported on this platform")

    job = BackgroundSyncJob(engine, max_items=args.limit, time_budget=args.budget)
    return _print_report(await job.run(cancel_event))


async def _cmd_watch(engine: SyncEngine, args: argparse.Namespace) -> int:
    await engine.start_auto_sync()
    try:
        report = await engine.trigger_sync()
        if report is not None:
            print(report.summary(), flush=True)
        print(
            "Watching the library for new photos (Ctrl+C to stop)...",
            flush=True,
        )
        while True:
            await asyncio.sleep(3600)
    finally:
        await engine.stop_auto_sync()


async def _cmd_status(engine: SyncEngine, args: argparse.Namespace) -> int:
    print(f"Ledger: {engine.ledger.count()} photos backed up ({engine.ledger.path})")
    try:
        health = await run_sync(engine.client.health_check)
        print(
            f"Server: {health.status} (version {health.version}, "
            f"storage {'available' if health.storage_available else 'unavailable'})"
        )
    except PhotoBackupError as e:
        print(f"Server: unreachable ({e.message})")

    try:
        assets = await run_sync(engine.library.fetch_assets)
    except PhotoBackupError as e:
        print(f"Library: {e.message}")
        return 1
    uploaded = engine.ledger.identifiers()
    pending = sum(1 for a in assets if a.id not in uploaded)
    print(f"Library: {len(assets)} photos, {pending} waiting to upload")
    return 0


async def _cmd_clear_history(engine: SyncEngine, args: argparse.Namespace) -> int:
    if not args.yes:
        print(
            "This forgets which photos were uploaded; the next sync re-checks "
            "every photo. Re-run with --yes to confirm."
        )
        return 1
    count = engine.ledger.count()
    engine.ledger.clear()
    print(f"Cleared {count} ledger entries.")
    return 0


_COMMANDS = {
    "sync": _cmd_sync,
    "background": _cmd_background,
    "watch": _cmd_watch,
    "status": _cmd_status,
    "clear-history": _cmd_clear_history,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-backup",
        description="Back up a local photo library to a Home Photo Backup server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One full sync pass
  photo-backup --server http://192.168.1.10:8080 --library ~/Pictures sync

  # Bounded run for a scheduler: at most 50 photos within 25 seconds
  photo-backup background --limit 50 --budget 25

  # Keep running and upload new photos as they appear
  photo-backup watch
        """,
    )
    parser.add_argument("--server", help="Server base URL (overrides PHOTO_BACKUP_SERVER_URL)")
    parser.add_argument("--library", help="Photo library directory (overrides PHOTO_BACKUP_LIBRARY)")
    parser.add_argument("--ledger", help="Upload ledger file (overrides PHOTO_BACKUP_LEDGER)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"photo-backup version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("sync", help="Run one full sync pass")
    background = sub.add_parser(
        "background", help="Run a bounded, cancellable sync pass"
    )
    background.add_argument(
        "--limit", type=int, default=None, help="Maximum photos to process"
    )
    background.add_argument(
        "--budget", type=float, default=None, help="Time budget in seconds"
    )
    sub.add_parser("watch", help="Sync now, then on every library change")
    sub.add_parser("status", help="Show ledger, library and server status")
    clear = sub.add_parser("clear-history", help="Forget all uploaded photos")
    clear.add_argument("--yes", action="store_true", help="Confirm the reset")
    return parser


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()

    overrides = {
        "server_url": args.server,
        "library_path": args.library,
        "ledger_path": args.ledger,
        "debug": args.debug,
    }
    try:
        config, yaml_log_file = load_config_from_sources(overrides)
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        mode="cli", debug=config.debug, log_file=args.log_file or yaml_log_file
    )

    if args.command == "background" and args.limit is None:
        args.limit = config.background_batch_limit

    try:
        engine = create_sync_engine(config)
        exit_code = asyncio.run(_COMMANDS[args.command](engine, args))
    except PhotoBackupError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
