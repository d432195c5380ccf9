"""Sync orchestrator running one progress synchronization cycle end to end."""

import asyncio
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from src.models.config import SyncConfig
from src.models.progress import (
    ConflictResolution,
    ConflictStrategy,
    DetectionResult,
    ProgressConflict,
    ProgressRecord,
    RecordSide,
    SyncMetadata,
    SyncResult,
    SyncState,
    utc_now,
)
from src.sync.batch_pusher import BatchPusher
from src.sync.checkpoint import CheckpointTracker, WriteResult
from src.sync.conflict_detector import ConflictDetector
from src.sync.conflict_resolver import ConflictResolver
from src.sync.errors import (
    LocalStoreError,
    NetworkUnavailableError,
    NoItemsToSyncError,
    SyncError,
)
from src.sync.protocols import LocalProgressStore, RemoteProgressTransport
from src.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


class SyncPlan(BaseModel):
    """Disjoint split of a cycle's records by the direction they travel."""

    push_set: list[ProgressRecord] = Field(default_factory=list)
    pull_set: list[ProgressRecord] = Field(default_factory=list)
    already_synced: list[ProgressRecord] = Field(
        default_factory=list, description="Local records both sides already agree on"
    )

    model_config = {"frozen": True}


def partition(detection: DetectionResult, resolutions: list[ConflictResolution]) -> SyncPlan:
    """
    Split detected and resolved records into push, pull and already-synced sets.

    Records won by the local side are pushed, records won by the remote side
    are pulled. Materials both sides agree on go straight to already-synced.

    Args:
        detection: Output of the conflict detector
        resolutions: Automatic resolutions of the detected conflicts

    Returns:
        SyncPlan whose push and pull sets never share a material id
    """
    matched = detection.matched_material_ids
    won_by = {
        side: [
            r.resolved_record
            for r in resolutions
            if r.winner is side and r.resolved_record is not None
        ]
        for side in RecordSide
    }

    return SyncPlan(
        push_set=[
            *(r for r in detection.non_conflicting_local if r.material_id not in matched),
            *won_by[RecordSide.LOCAL],
        ],
        pull_set=[*detection.non_conflicting_remote, *won_by[RecordSide.REMOTE]],
        already_synced=[r for r in detection.non_conflicting_local if r.material_id in matched],
    )


class SyncOrchestrator:
    """Orchestrates synchronization between local storage and the remote store."""

    def __init__(
        self,
        local_store: LocalProgressStore,
        remote_transport: RemoteProgressTransport,
        resolver: ConflictResolver | None = None,
        detector: ConflictDetector | None = None,
        config: SyncConfig | None = None,
    ):
        """
        Initialize sync orchestrator.

        Args:
            local_store: Local storage collaborator
            remote_transport: Remote transport collaborator
            resolver: Optional conflict resolver (a default one is created if None)
            detector: Optional conflict detector (a default one is created if None)
            config: Optional engine configuration (defaults if None)

        Raises:
            SyncConfigurationError: If the configured batch size is invalid
        """
        self._config: SyncConfig = config or SyncConfig()
        self._local_store = local_store
        self._remote = remote_transport
        self._resolver: ConflictResolver = resolver or ConflictResolver()
        self._detector: ConflictDetector = detector or ConflictDetector()
        self._pusher = BatchPusher(
            remote_transport,
            max_batch_size=self._config.max_batch_size,
            push_retries=self._config.push_retries,
            retry_base_delay=self._config.retry_base_delay,
            retry_max_delay=self._config.retry_max_delay,
        )
        self._checkpoints = CheckpointTracker(
            local_store, future_skew_seconds=self._config.checkpoint_future_skew_seconds
        )

        log.info("sync_orchestrator_initialized", max_batch_size=self._config.max_batch_size)

    @property
    def config(self) -> SyncConfig:
        return self._config

    async def sync(
        self,
        user_id: str,
        force_full_sync: bool = False,
        strategy: ConflictStrategy | str | None = None,
    ) -> SyncResult:
        """
        Run one synchronization cycle for a user.

        This method:
        1. Loads the checkpoint and picks the "since" cursor
        2. Fetches local and remote changes concurrently
        3. Detects and resolves conflicts
        4. Pushes local winners in chunks and saves remote winners locally
        5. Writes the new checkpoint and marks synced records (best effort).
           The cursor stays put while pulls failed or conflicts are open, so
           those records are fetched again by the next cycle

        Args:
            user_id: User whose progress is synchronized
            force_full_sync: Ignore the stored cursor and fetch everything
            strategy: Conflict strategy for this cycle (configured default if None)

        Returns:
            SyncResult describing synced items, pending retries and open conflicts

        Raises:
            InvalidSyncStateError: If the checkpoint cannot be used
            NetworkUnavailableError: If the remote store cannot be reached
            LocalStoreError: If local records cannot be fetched and the remote was reachable
            NoItemsToSyncError: If configured to raise when nothing changed
        """
        strategy = ConflictStrategy(strategy) if strategy is not None else self._config.default_strategy
        start_time = utc_now()

        log.info(
            "sync_started",
            user_id=user_id,
            force_full_sync=force_full_sync,
            strategy=strategy.value,
        )

        state = await self._checkpoints.load(user_id)
        since = None if force_full_sync else state.last_sync_timestamp
        if state.pending_retry:
            log.info("retrying_pending_records", user_id=user_id, pending=len(state.pending_retry))

        local_records, remote_records = await self._fetch(user_id, since, state)

        if self._config.raise_when_empty and not local_records and not remote_records:
            log.info("no_items_to_sync", user_id=user_id)
            raise NoItemsToSyncError(f"No progress changes to sync for {user_id}")

        detection = self._detector.detect(local_records, remote_records)
        resolutions, unresolved = self._resolve_all(detection.conflicts, strategy)
        plan = partition(detection, resolutions)

        log.info(
            "sync_plan_ready",
            user_id=user_id,
            push=len(plan.push_set),
            pull=len(plan.pull_set),
            already_synced=len(plan.already_synced),
            unresolved=len(unresolved),
        )

        push_outcome = await self._pusher.push(plan.push_set)
        pulled, pull_failed = await self._pull(user_id, plan.pull_set)

        synced_items = [*plan.already_synced, *push_outcome.pushed, *pulled]
        pending_retry = [*push_outcome.failed, *pull_failed]

        end_time = utc_now()
        # Failed pulls and open conflicts must be fetched again next cycle
        hold_cursor = bool(pull_failed or unresolved)
        if hold_cursor:
            log.info(
                "checkpoint_cursor_held",
                user_id=user_id,
                cursor=since,
                pull_failed=len(pull_failed),
                unresolved=len(unresolved),
            )
        new_state = SyncState(
            last_sync_timestamp=since if hold_cursor else end_time,
            synced_item_ids=frozenset(record.id for record in synced_items),
            pending_retry=pending_retry,
        )
        self._report_write(
            "checkpoint_save_failed", await self._checkpoints.save(new_state, user_id), user_id
        )
        self._report_write(
            "mark_synced_failed",
            await self._checkpoints.mark_synced([record.id for record in synced_items]),
            user_id,
        )

        duration = (end_time - start_time).total_seconds()
        result = SyncResult(
            synced_items=synced_items,
            conflicts=unresolved,
            strategy=strategy,
            synced_at=end_time,
            pending_retry=pending_retry,
            metadata=SyncMetadata(
                pushed_count=len(push_outcome.pushed),
                pulled_count=len(pulled),
                auto_resolved_count=len(resolutions),
                duration_seconds=max(duration, 0.0),
                was_incremental=not force_full_sync,
            ),
        )

        log.info(
            "sync_completed",
            user_id=user_id,
            synced=len(synced_items),
            pushed=result.metadata.pushed_count,
            pulled=result.metadata.pulled_count,
            auto_resolved=result.metadata.auto_resolved_count,
            unresolved=len(unresolved),
            pending_retry=len(pending_retry),
            duration_seconds=result.metadata.duration_seconds,
            success=result.is_fully_successful,
        )

        return result

    async def _fetch(
        self, user_id: str, since: datetime | None, state: SyncState
    ) -> tuple[list[ProgressRecord], list[ProgressRecord]]:
        """
        Fetch local and remote records concurrently.

        On a remote failure or cancellation the local records that were
        already fetched are written into the retry queue before the error
        propagates.
        """
        local_task = asyncio.ensure_future(self._local_store.unsynced_since(user_id, since))
        remote_task = asyncio.ensure_future(self._fetch_remote(user_id, since))

        try:
            local_outcome, remote_outcome = await asyncio.gather(
                local_task, remote_task, return_exceptions=True
            )
        except asyncio.CancelledError:
            log.warning("sync_cancelled", user_id=user_id)
            for task in (local_task, remote_task):
                task.cancel()
            await self._preserve_local(user_id, state, _completed_records(local_task))
            raise

        local_failed = isinstance(local_outcome, BaseException)
        local_records = [] if local_failed else list(local_outcome)

        if isinstance(remote_outcome, BaseException):
            log.error(
                "remote_fetch_failed",
                user_id=user_id,
                error=str(remote_outcome),
                error_type=type(remote_outcome).__name__,
                local_records=len(local_records),
                local_fetch_failed=local_failed,
            )
            await self._preserve_local(user_id, state, local_records)
            if isinstance(remote_outcome, SyncError):
                raise remote_outcome
            raise NetworkUnavailableError(
                f"Remote progress store unavailable: {remote_outcome}"
            ) from remote_outcome

        if local_failed:
            log.error("local_fetch_failed", user_id=user_id, error=str(local_outcome))
            raise LocalStoreError(
                f"Failed to fetch local progress for {user_id}: {local_outcome}"
            ) from local_outcome

        log.info(
            "records_fetched",
            user_id=user_id,
            since=since,
            local_count=len(local_records),
            remote_count=len(remote_outcome),
        )
        return local_records, list(remote_outcome)

    async def _fetch_remote(self, user_id: str, since: datetime | None) -> list[ProgressRecord]:
        timeout = self._config.fetch_timeout_seconds

        @exponential_backoff_retry(
            max_retries=self._config.fetch_retries,
            base_delay=self._config.retry_base_delay,
            max_delay=self._config.retry_max_delay,
        )
        async def fetch() -> list[ProgressRecord]:
            call = self._remote.fetch_since(user_id, since)
            if timeout is None:
                return list(await call)
            return list(await asyncio.wait_for(call, timeout))

        return await fetch()

    async def _preserve_local(
        self, user_id: str, state: SyncState, local_records: list[ProgressRecord]
    ) -> None:
        if not local_records:
            return
        snapshot = CheckpointTracker.snapshot_for_retry(state, local_records)
        write = await self._checkpoints.save(snapshot, user_id)
        if write.ok:
            log.info("retry_snapshot_saved", user_id=user_id, pending_retry=len(local_records))
        else:
            self._report_write("retry_snapshot_failed", write, user_id)

    def _resolve_all(
        self, conflicts: list[ProgressConflict], strategy: ConflictStrategy
    ) -> tuple[list[ConflictResolution], list[ProgressConflict]]:
        resolutions = [self._resolver.resolve(conflict, strategy) for conflict in conflicts]
        resolved = [r for r in resolutions if not r.requires_manual_decision]
        unresolved = [
            conflict
            for conflict, resolution in zip(conflicts, resolutions)
            if resolution.requires_manual_decision
        ]
        return resolved, unresolved

    async def _pull(
        self, user_id: str, pull_set: list[ProgressRecord]
    ) -> tuple[list[ProgressRecord], list[ProgressRecord]]:
        """Save remote records locally. A failure queues the whole pull-set for retry."""
        if not pull_set:
            return [], []
        try:
            await self._local_store.save_records(pull_set)
        except Exception as e:
            log.warning(
                "pull_save_failed",
                user_id=user_id,
                records=len(pull_set),
                error=str(e),
                error_type=type(e).__name__,
            )
            return [], list(pull_set)
        return [record.mark_synced() for record in pull_set], []

    @staticmethod
    def _report_write(event: str, write: WriteResult, user_id: str) -> None:
        if not write.ok:
            log.warning(event, user_id=user_id, error=write.error)


def _completed_records(task: "asyncio.Future[list[ProgressRecord]]") -> list[ProgressRecord]:
    """Result of a fetch task if it finished successfully, otherwise nothing."""
    if task.done() and not task.cancelled() and task.exception() is None:
        return list(task.result())
    return []
