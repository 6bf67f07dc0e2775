"""Command-line front end for the Raindrop sync engine.

Usage:
    raindropbar sync [--full | --force]
    raindropbar status
    raindropbar token set <value>
    raindropbar token clear
    raindropbar watch [--interval SECONDS]

Configuration comes from the environment (and ``.env``); see ``raindropbar.config``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from raindropbar.config import load_config
from raindropbar.core.logging_utils import redact_token, setup_json_logging
from raindropbar.db.session import DatabaseSessionManager
from raindropbar.infrastructure.persistence.sqlite.repositories import (
    SqliteLibraryRepositoryAdapter,
    SqliteSyncStateRepositoryAdapter,
)
from raindropbar.security.token_store import FileTokenStore
from raindropbar.sync.orchestrator import SyncOrchestrator
from raindropbar.sync.state import SyncMode, SyncPhase

if TYPE_CHECKING:
    from collections.abc import Sequence

    from raindropbar.config import AppConfig
    from raindropbar.sync.state import SyncProgress

logger = logging.getLogger(__name__)


def _open_store(cfg: AppConfig) -> DatabaseSessionManager:
    db = DatabaseSessionManager(cfg.runtime.db_path)
    db.migrate()
    return db


def _build_orchestrator(cfg: AppConfig, db: DatabaseSessionManager) -> SyncOrchestrator:
    orchestrator = SyncOrchestrator(cfg, FileTokenStore(cfg.runtime.token_dir))
    orchestrator.configure(db)
    return orchestrator


def _print_progress(progress: SyncProgress) -> None:
    fraction = progress.fraction_completed
    suffix = f" [{fraction:.0%}]" if fraction is not None else ""
    print(f"  {progress.message}{suffix}", flush=True)


async def run_sync(cfg: AppConfig, mode: SyncMode | None = None) -> int:
    """Run one sync and print a summary.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    db = _open_store(cfg)
    orchestrator = _build_orchestrator(cfg, db)
    orchestrator.subscribe(_print_progress)
    logger.info(
        "cli_sync_started",
        extra={"mode": mode.value if mode else None, "api_url": cfg.raindrop.api_url},
    )
    try:
        outcome = await orchestrator.sync(mode)
    except Exception as e:
        print(f"\nERROR: {e}")
        return 1
    finally:
        await orchestrator.aclose()
        db.close()

    if outcome is None:
        print("A sync is already running.")
        return 1

    print("\n=== Raindrop Sync Summary ===")
    print(f"Mode: {outcome.mode.value}")
    print(f"Result: {outcome.phase.value}")
    print(
        f"Collections: {outcome.collections.inserted} added, "
        f"{outcome.collections.updated} updated, "
        f"{outcome.collections.deleted} removed"
    )
    print(
        f"Bookmarks: {outcome.bookmarks.inserted} added, "
        f"{outcome.bookmarks.updated} updated, "
        f"{outcome.bookmarks.unchanged} unchanged"
    )
    if cfg.sync.trash_enabled:
        print(f"Trash: {outcome.trash.applied} applied")
    print(f"Pages fetched: {outcome.pages_fetched}")
    print(f"Duration: {outcome.duration_seconds:.1f}s")
    return 0 if outcome.phase == SyncPhase.COMPLETED else 1


async def run_status(cfg: AppConfig) -> int:
    db = _open_store(cfg)
    try:
        state = await SqliteSyncStateRepositoryAdapter(db).async_load_state()
        library = SqliteLibraryRepositoryAdapter(db)
        collections = await library.async_count_collections()
        bookmarks = await library.async_count_bookmarks()
        recent = await library.async_list_bookmarks(limit=5)
    finally:
        db.close()

    token = FileTokenStore(cfg.runtime.token_dir).get()

    print("=== Raindrop Sync Status ===")
    print(f"Token: {redact_token(token) if token else 'not configured'}")
    print(f"Collections: {collections}")
    print(f"Bookmarks: {bookmarks}")
    print(f"Full backfill completed: {'yes' if state.has_completed_full_backfill else 'no'}")
    print(f"Cursor: {state.cursor_last_update.isoformat() if state.cursor_last_update else '-'}")
    print(
        "Last successful sync: "
        f"{state.last_successful_sync_at.isoformat() if state.last_successful_sync_at else 'never'}"
    )
    print(f"Last attempt: {state.last_attempt_at.isoformat() if state.last_attempt_at else 'never'}")
    if state.checkpoint:
        print(
            f"Checkpoint: {state.checkpoint.mode.value} page {state.checkpoint.page}, "
            f"{state.checkpoint.items_processed} items"
        )
    if recent:
        print("\nRecent bookmarks:")
        for item in recent:
            title = (item.get("title") or "(no title)")[:60]
            print(f"  - {title}")
            print(f"    {item['link'][:80]}")
    return 0


def run_token(cfg: AppConfig, action: str, value: str | None = None) -> int:
    store = FileTokenStore(cfg.runtime.token_dir)
    if action == "set":
        try:
            store.set(value or "")
        except ValueError as e:
            print(f"ERROR: {e}")
            return 1
        print(f"Token saved ({redact_token(value)}).")
        return 0
    store.clear()
    print("Token cleared.")
    return 0


async def run_watch(cfg: AppConfig, interval: float | None = None) -> int:
    """Sync now, then keep syncing every ``interval`` seconds until interrupted."""
    db = _open_store(cfg)
    orchestrator = _build_orchestrator(cfg, db)
    orchestrator.subscribe(_print_progress)
    try:
        try:
            await orchestrator.sync()
        except Exception as e:
            print(f"ERROR: {e}")
        orchestrator.start_auto_sync(interval)
        print(f"Watching; syncing every {interval or cfg.sync.auto_interval_sec}s (Ctrl+C to stop).")
        await asyncio.Event().wait()
    finally:
        await orchestrator.aclose()
        db.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="raindropbar", description="Sync Raindrop.io bookmarks into a local cache"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync")
    mode_group = sync_parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--full", action="store_true", help="Run a full backfill instead of an incremental sync"
    )
    mode_group.add_argument(
        "--force", action="store_true", help="Discard sync state and re-download everything"
    )

    subparsers.add_parser("status", help="Show sync state and cache counts")

    token_parser = subparsers.add_parser("token", help="Manage the API token")
    token_sub = token_parser.add_subparsers(dest="token_action", required=True)
    token_set = token_sub.add_parser("set", help="Store a token")
    token_set.add_argument("value", help="Raindrop test token or access token")
    token_sub.add_parser("clear", help="Remove the stored token")

    watch_parser = subparsers.add_parser("watch", help="Sync periodically until interrupted")
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between syncs (defaults to SYNC_AUTO_INTERVAL_SEC)",
    )
    return parser


def main(argv: Sequence[str] | None = None, *, configure_logging: bool = True) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config()
    except RuntimeError as e:
        print(f"ERROR: {e}")
        return 1

    if configure_logging:
        setup_json_logging(
            cfg.runtime.log_level,
            use_loguru=cfg.runtime.log_use_loguru,
            log_file=cfg.runtime.log_file,
        )

    if args.command == "token":
        return run_token(cfg, args.token_action, getattr(args, "value", None))
    if args.command == "status":
        return asyncio.run(run_status(cfg))
    if args.command == "watch":
        try:
            return asyncio.run(run_watch(cfg, args.interval))
        except KeyboardInterrupt:
            print("\nStopped.")
            return 0

    mode = None
    if args.force:
        mode = SyncMode.FORCE_FULL_RESYNC
    elif args.full:
        mode = SyncMode.FULL_BACKFILL
    return asyncio.run(run_sync(cfg, mode))


if __name__ == "__main__":
    sys.exit(main())
