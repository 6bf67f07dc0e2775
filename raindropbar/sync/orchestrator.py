"""Sync orchestrator: drives full backfills, incremental updates and auto sync."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from raindropbar.adapters.raindrop.client import SORT_LAST_UPDATE_DESC, RaindropClient
from raindropbar.adapters.raindrop.rate_limiter import RateLimiter
from raindropbar.core.cancellation import CancellationToken
from raindropbar.core.logging_utils import generate_correlation_id
from raindropbar.core.time_utils import utc_now
from raindropbar.db.models import TRASH_COLLECTION_ID
from raindropbar.infrastructure.persistence.sqlite.repositories.sync_state_repository import (
    SqliteSyncStateRepositoryAdapter,
)
from raindropbar.sync.errors import NoTokenError, StoreNotReadyError, SyncCancelledError
from raindropbar.sync.reconciler import Reconciler, ReconcileStats
from raindropbar.sync.state import (
    CheckpointMode,
    SyncCheckpoint,
    SyncMode,
    SyncPhase,
    SyncProgress,
    SyncState,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from raindropbar.adapters.raindrop.models import CollectionResponse, RaindropResponse
    from raindropbar.config import AppConfig
    from raindropbar.db.session import DatabaseSessionManager
    from raindropbar.security.token_store import TokenStore
    from raindropbar.sync.protocols import RaindropClientFactory, RaindropClientProtocol

logger = logging.getLogger(__name__)

ALL_BOOKMARKS_COLLECTION_ID = 0
TRASH_TITLE = "Trash"


@dataclass
class SyncOutcome:
    """Summary of one finished (completed or cancelled) run."""

    mode: SyncMode
    phase: SyncPhase
    correlation_id: str
    started_at: datetime
    finished_at: datetime | None = None
    pages_fetched: int = 0
    items_seen: int = 0
    collections: ReconcileStats = field(default_factory=ReconcileStats)
    bookmarks: ReconcileStats = field(default_factory=ReconcileStats)
    trash: ReconcileStats = field(default_factory=ReconcileStats)

    @property
    def items_applied(self) -> int:
        return self.bookmarks.applied + self.trash.applied

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class _WalkResult:
    pages: int = 0
    found: int = 0
    max_seen: datetime | None = None
    stats: ReconcileStats = field(default_factory=ReconcileStats)


def _max_last_update(
    current: datetime | None, items: Sequence[RaindropResponse]
) -> datetime | None:
    for item in items:
        if current is None or item.last_update > current:
            current = item.last_update
    return current


def _later(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None or b is None:
        return a or b
    return max(a, b)


class SyncOrchestrator:
    """Owns one sync run at a time against a configured local store.

    Construct it once, call :meth:`configure` with the database session, then
    share the instance. Observers read :attr:`progress`, :attr:`is_syncing`,
    :attr:`error` and friends, or :meth:`subscribe` for progress pushes.
    """

    def __init__(
        self,
        config: AppConfig,
        token_store: TokenStore,
        *,
        client_factory: RaindropClientFactory | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._token_store = token_store
        self._rate_limiter = rate_limiter or RateLimiter(
            config.raindrop.min_request_interval_sec,
            config.raindrop.default_throttle_sec,
        )
        self._client_factory = client_factory or self._default_client
        self._clock = clock
        self._sleep = sleep

        self._session: DatabaseSessionManager | None = None
        self._state_repo: SqliteSyncStateRepositoryAdapter | None = None

        self._is_syncing = False
        self._cancel_token: CancellationToken | None = None
        self._progress = SyncProgress()
        self._observers: list[Callable[[SyncProgress], None]] = []
        self._state = SyncState()
        self._error: BaseException | None = None

        self._auto_task: asyncio.Task[None] | None = None
        self._launch_task: asyncio.Task[None] | None = None
        # Background tasks currently inside sync(); they are never cancelled mid-run.
        self._tasks_in_sync: set[asyncio.Task[Any]] = set()

    def _default_client(self, token: str) -> RaindropClientProtocol:
        return RaindropClient.from_config(
            self._config.raindrop, token, rate_limiter=self._rate_limiter
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._session is not None

    def configure(self, session: DatabaseSessionManager) -> None:
        """Attach the local store. A second call is ignored."""
        if self._session is not None:
            logger.info("sync_orchestrator_already_configured")
            return
        self._session = session
        self._state_repo = SqliteSyncStateRepositoryAdapter(session)
        logger.info("sync_orchestrator_configured")

    async def refresh_state(self) -> SyncState:
        """Reload the persisted sync state into :attr:`sync_state`."""
        if self._state_repo is None:
            raise StoreNotReadyError
        self._state = await self._state_repo.async_load_state()
        return self.sync_state

    # ------------------------------------------------------------------
    # Observables
    # ------------------------------------------------------------------

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def progress(self) -> SyncProgress:
        return self._progress.snapshot()

    @property
    def last_sync_time(self) -> datetime | None:
        return self._state.last_successful_sync_at

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def error_message(self) -> str | None:
        return str(self._error) if self._error is not None else None

    @property
    def can_cancel(self) -> bool:
        token = self._cancel_token
        return self._is_syncing and token is not None and not token.is_cancelled

    @property
    def sync_state(self) -> SyncState:
        return self._state.model_copy(deep=True)

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def subscribe(self, callback: Callable[[SyncProgress], None]) -> Callable[[], None]:
        """Register a progress observer; returns a function that unregisters it."""
        self._observers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(callback)

        return _unsubscribe

    def _set_progress(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self._progress, name, value)
        snapshot = self._progress.snapshot()
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("sync_progress_observer_failed")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def sync(self, mode: SyncMode | None = None) -> SyncOutcome | None:
        """Run one sync. Returns ``None`` without doing anything if a run is active.

        Raises whatever aborted a failed run; a cancelled run returns normally.
        """
        if self._is_syncing:
            logger.info("sync_already_running", extra={"requested_mode": mode})
            return None
        self._is_syncing = True
        self._cancel_token = CancellationToken()
        try:
            return await self._run(mode, self._cancel_token)
        finally:
            self._is_syncing = False

    def cancel_sync(self) -> None:
        if self._cancel_token is None or not self._is_syncing:
            return
        self._cancel_token.cancel("Sync cancelled by user")
        logger.info("sync_cancel_requested")

    async def force_full_resync(self) -> SyncOutcome | None:
        """Discard persisted sync state and run a full backfill."""
        if self._is_syncing:
            logger.info("force_full_resync_ignored_sync_running")
            return None
        return await self.sync(SyncMode.FORCE_FULL_RESYNC)

    def start_auto_sync(self, interval: float | None = None) -> None:
        """Start (or restart) the periodic background sync task."""
        if interval is None:
            interval = self._config.sync.auto_interval_sec
        # A run already in progress on the old loop is left to finish.
        self._detach_auto_task(cancel_run=False)
        self._auto_task = asyncio.create_task(
            self._auto_sync_loop(interval), name="raindropbar-auto-sync"
        )
        logger.info("auto_sync_started", extra={"interval_seconds": interval})

    def stop_auto_sync(self) -> None:
        """Stop the periodic sync.

        A loop that is sleeping is cancelled outright. A loop that is inside a
        run gets a cooperative :meth:`cancel_sync` and exits once the run ends.
        """
        self._detach_auto_task(cancel_run=True)

    def _detach_auto_task(self, *, cancel_run: bool) -> None:
        task = self._auto_task
        self._auto_task = None
        if task is None or task.done():
            return
        if task in self._tasks_in_sync:
            if cancel_run:
                self.cancel_sync()
        else:
            task.cancel()
        logger.info("auto_sync_stopped", extra={"mid_run": task in self._tasks_in_sync})

    @property
    def auto_sync_running(self) -> bool:
        return self._auto_task is not None and not self._auto_task.done()

    def start_on_launch_if_possible(self) -> bool:
        """Kick off a background sync (and auto sync when enabled) if the store and token are ready."""
        if self._session is None:
            logger.info("launch_sync_skipped", extra={"reason": "store_not_ready"})
            return False
        if not self._token_store.has_token():
            logger.info("launch_sync_skipped", extra={"reason": "no_token"})
            return False
        self._launch_task = asyncio.create_task(
            self._sync_logging_errors("launch"), name="raindropbar-launch-sync"
        )
        if self._config.sync.auto_enabled:
            self.start_auto_sync()
        return True

    async def aclose(self) -> None:
        """Stop background tasks, cancelling any active run at its next safe point."""
        self.cancel_sync()
        tasks = [t for t in (self._auto_task, self._launch_task) if t is not None]
        self.stop_auto_sync()
        self._launch_task = None
        for task in tasks:
            if not task.done() and task not in self._tasks_in_sync:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _auto_sync_loop(self, interval: float) -> None:
        me = asyncio.current_task()
        while self._auto_task is me:
            await self._sleep(interval)
            await self._sync_logging_errors("auto")

    async def _sync_logging_errors(self, trigger: str) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks_in_sync.add(task)
        try:
            await self.sync()
        except Exception as exc:
            # Already stored in ``error`` for observers.
            logger.warning(
                "background_sync_failed",
                extra={"trigger": trigger, "error": str(exc), "error_type": type(exc).__name__},
            )
        finally:
            self._tasks_in_sync.discard(task)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run(self, mode: SyncMode | None, cancel: CancellationToken) -> SyncOutcome:
        correlation_id = generate_correlation_id()
        started_at = self._clock()
        outcome = SyncOutcome(
            mode=mode or SyncMode.FULL_BACKFILL,
            phase=SyncPhase.STARTING,
            correlation_id=correlation_id,
            started_at=started_at,
        )
        self._error = None
        self._progress = SyncProgress()
        self._set_progress(phase=SyncPhase.STARTING)

        try:
            if self._session is None or self._state_repo is None:
                raise StoreNotReadyError
            token = self._token_store.get()
            if not token:
                raise NoTokenError

            state = await self._state_repo.async_load_state()
            requested = mode or state.infer_mode()
            effective = requested
            if requested == SyncMode.FORCE_FULL_RESYNC:
                state = await self._state_repo.async_reset_state()
                effective = SyncMode.FULL_BACKFILL
            outcome.mode = effective

            state.last_attempt_at = started_at
            await self._state_repo.async_save_state(state)
            self._state = state

            logger.info(
                "sync_started",
                extra={
                    "correlation_id": correlation_id,
                    "requested_mode": requested.value,
                    "mode": effective.value,
                    "has_completed_full_backfill": state.has_completed_full_backfill,
                    "cursor": state.cursor_last_update.isoformat()
                    if state.cursor_last_update
                    else None,
                },
            )

            reconciler = Reconciler(self._session)
            async with self._client_factory(token) as client:
                collections = await self._sync_collections(client, reconciler, cancel, outcome)
                if effective == SyncMode.FULL_BACKFILL:
                    cursor = await self._full_backfill(
                        client, reconciler, cancel, outcome, state, collections
                    )
                    state_updates: dict[str, Any] = {
                        "has_completed_full_backfill": True,
                        "cursor_last_update": cursor or state.cursor_last_update,
                    }
                else:
                    cursor = await self._incremental(client, reconciler, cancel, outcome, state)
                    state_updates = {"cursor_last_update": cursor}
                if self._config.sync.trash_enabled:
                    state_updates["trash_cursor_last_update"] = await self._sync_trash(
                        client, reconciler, cancel, outcome, state
                    )

            cancel.raise_if_cancelled()
            self._set_progress(phase=SyncPhase.FINALIZING)
            finished_at = self._clock()
            for name, value in state_updates.items():
                setattr(state, name, value)
            state.checkpoint = None
            state.last_successful_sync_at = finished_at
            await self._state_repo.async_save_state(state)
            self._state = state

            outcome.phase = SyncPhase.COMPLETED
            outcome.finished_at = finished_at
            self._set_progress(phase=SyncPhase.COMPLETED)
            logger.info(
                "sync_completed",
                extra={
                    "correlation_id": correlation_id,
                    "mode": effective.value,
                    "pages_fetched": outcome.pages_fetched,
                    "items_seen": outcome.items_seen,
                    "items_applied": outcome.items_applied,
                    "collections_deleted": outcome.collections.deleted,
                    "duration_seconds": round(outcome.duration_seconds, 2),
                },
            )
            return outcome

        except SyncCancelledError as exc:
            outcome.phase = SyncPhase.CANCELLED
            outcome.finished_at = self._clock()
            self._set_progress(phase=SyncPhase.CANCELLED)
            logger.info(
                "sync_cancelled",
                extra={
                    "correlation_id": correlation_id,
                    "reason": str(exc),
                    "pages_fetched": outcome.pages_fetched,
                },
            )
            return outcome

        except asyncio.CancelledError:
            # The caller's task was cancelled; the phase must still leave the active states.
            outcome.phase = SyncPhase.CANCELLED
            outcome.finished_at = self._clock()
            self._set_progress(phase=SyncPhase.CANCELLED)
            logger.warning(
                "sync_task_cancelled",
                extra={"correlation_id": correlation_id, "pages_fetched": outcome.pages_fetched},
            )
            raise

        except Exception as exc:
            self._error = exc
            self._set_progress(phase=SyncPhase.FAILED)
            logger.exception(
                "sync_failed",
                extra={
                    "correlation_id": correlation_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "pages_fetched": outcome.pages_fetched,
                },
            )
            raise

    async def _sync_collections(
        self,
        client: RaindropClientProtocol,
        reconciler: Reconciler,
        cancel: CancellationToken,
        outcome: SyncOutcome,
    ) -> list[CollectionResponse]:
        cancel.raise_if_cancelled()
        self._set_progress(phase=SyncPhase.FETCHING_COLLECTIONS)
        collections = await client.list_collections()
        cancel.raise_if_cancelled()
        outcome.collections = await reconciler.apply_collections(collections)
        return collections

    async def _full_backfill(
        self,
        client: RaindropClientProtocol,
        reconciler: Reconciler,
        cancel: CancellationToken,
        outcome: SyncOutcome,
        state: SyncState,
        collections: Sequence[CollectionResponse],
    ) -> datetime | None:
        """Page through every bookmark; returns the highest ``last_update`` seen."""
        page_size = self._config.sync.page_size
        checkpoint_every = self._config.sync.checkpoint_interval_pages
        run_started_at = outcome.started_at

        estimate = sum(collection.count for collection in collections)
        self._set_progress(
            phase=SyncPhase.SYNCING_BOOKMARKS,
            total_units=estimate or None,
            completed_units=0,
        )

        page = 0
        fetched = 0
        total: int | None = None
        max_seen: datetime | None = None

        while True:
            cancel.raise_if_cancelled()
            response = await client.list_bookmarks(
                ALL_BOOKMARKS_COLLECTION_ID, page=page, per_page=page_size
            )
            cancel.raise_if_cancelled()

            if page == 0 and response.count is not None:
                total = response.count
                self._set_progress(total_units=total)

            items = response.items
            stats = await reconciler.apply_bookmark_page(items)
            outcome.bookmarks = outcome.bookmarks.merge(stats)
            outcome.pages_fetched += 1
            outcome.items_seen += len(items)
            fetched += len(items)
            max_seen = _max_last_update(max_seen, items)

            self._set_progress(
                completed_units=fetched,
                current_page=page + 1,
                items_applied=outcome.items_applied,
            )
            logger.debug(
                "backfill_page_applied",
                extra={
                    "correlation_id": outcome.correlation_id,
                    "page": page,
                    "items": len(items),
                    "fetched": fetched,
                    "total": total,
                    "inserted": stats.inserted,
                    "updated": stats.updated,
                },
            )

            if (page + 1) % checkpoint_every == 0:
                await self._save_checkpoint(
                    state,
                    SyncCheckpoint(
                        mode=CheckpointMode.FULL_BACKFILL,
                        collection_id=ALL_BOOKMARKS_COLLECTION_ID,
                        page=page + 1,
                        started_at=run_started_at,
                        items_processed=fetched,
                    ),
                    outcome.correlation_id,
                )

            if len(items) < page_size:
                break
            if total is not None and fetched >= total:
                break
            page += 1

        return max_seen

    async def _incremental(
        self,
        client: RaindropClientProtocol,
        reconciler: Reconciler,
        cancel: CancellationToken,
        outcome: SyncOutcome,
        state: SyncState,
    ) -> datetime | None:
        """Apply bookmarks changed since the stored cursor; returns the new cursor."""
        self._set_progress(phase=SyncPhase.SYNCING_BOOKMARKS, total_units=None)
        walk = await self._walk_recent(
            client,
            reconciler,
            cancel,
            outcome,
            collection_id=ALL_BOOKMARKS_COLLECTION_ID,
            cursor=state.cursor_last_update,
        )
        outcome.bookmarks = outcome.bookmarks.merge(walk.stats)
        # Never moves backwards, e.g. when the newest item was trashed since the last run.
        return _later(state.cursor_last_update, walk.max_seen)

    async def _sync_trash(
        self,
        client: RaindropClientProtocol,
        reconciler: Reconciler,
        cancel: CancellationToken,
        outcome: SyncOutcome,
        state: SyncState,
    ) -> datetime | None:
        """Pull recently trashed bookmarks; returns the new trash cursor."""
        self._set_progress(
            phase=SyncPhase.SYNCING_TRASH,
            total_units=None,
            current_collection_title=TRASH_TITLE,
            current_page=0,
        )
        walk = await self._walk_recent(
            client,
            reconciler,
            cancel,
            outcome,
            collection_id=TRASH_COLLECTION_ID,
            cursor=state.trash_cursor_last_update,
        )
        outcome.trash = outcome.trash.merge(walk.stats)
        return _later(state.trash_cursor_last_update, walk.max_seen)

    async def _walk_recent(
        self,
        client: RaindropClientProtocol,
        reconciler: Reconciler,
        cancel: CancellationToken,
        outcome: SyncOutcome,
        *,
        collection_id: int,
        cursor: datetime | None,
    ) -> _WalkResult:
        """Walk pages newest first until the first item older than ``cursor`` minus the overlap."""
        page_size = self._config.sync.page_size
        threshold = cursor - timedelta(seconds=self._config.sync.overlap_sec) if cursor else None
        result = _WalkResult()
        page = 0

        while True:
            cancel.raise_if_cancelled()
            response = await client.list_bookmarks(
                collection_id, page=page, per_page=page_size, sort=SORT_LAST_UPDATE_DESC
            )
            cancel.raise_if_cancelled()

            items = response.items
            accepted: list[RaindropResponse] = []
            reached_cursor = False
            for item in items:
                if threshold is not None and item.last_update < threshold:
                    reached_cursor = True
                    break
                accepted.append(item)

            if accepted:
                stats = await reconciler.apply_bookmark_page(accepted)
                result.stats = result.stats.merge(stats)
            result.pages += 1
            result.found += len(accepted)
            result.max_seen = _max_last_update(result.max_seen, accepted)
            outcome.pages_fetched += 1
            outcome.items_seen += len(items)

            self._set_progress(
                completed_units=result.found,
                current_page=page + 1,
                items_applied=outcome.items_applied + result.stats.applied,
            )
            logger.debug(
                "incremental_page_applied",
                extra={
                    "correlation_id": outcome.correlation_id,
                    "collection_id": collection_id,
                    "page": page,
                    "items": len(items),
                    "accepted": len(accepted),
                    "reached_cursor": reached_cursor,
                },
            )

            if reached_cursor or len(items) < page_size:
                break
            page += 1

        return result

    async def _save_checkpoint(
        self, state: SyncState, checkpoint: SyncCheckpoint, correlation_id: str
    ) -> None:
        if self._state_repo is None:
            raise StoreNotReadyError
        # Only the checkpoint changes; cursor and backfill flag stay as loaded.
        state.checkpoint = checkpoint
        await self._state_repo.async_save_state(state)
        logger.info(
            "sync_checkpoint_saved",
            extra={
                "correlation_id": correlation_id,
                "mode": checkpoint.mode.value,
                "page": checkpoint.page,
                "items_processed": checkpoint.items_processed,
            },
        )
