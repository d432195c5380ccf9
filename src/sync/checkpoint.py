"""Checkpoint tracking for maintaining per-user synchronization state."""

from datetime import timedelta

import structlog
from pydantic import BaseModel

from src.models.progress import ProgressRecord, SyncState, utc_now
from src.sync.errors import InvalidSyncStateError
from src.sync.protocols import LocalProgressStore

log = structlog.stdlib.get_logger()


class WriteResult(BaseModel):
    """Outcome of a best-effort write."""

    ok: bool
    error: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: BaseException) -> "WriteResult":
        return cls(ok=False, error=f"{type(error).__name__}: {error}")


class CheckpointTracker:
    """Reads and writes sync checkpoints through the local store.

    Writes never raise on storage errors. They return a WriteResult so the
    caller decides how to report the failure.
    """

    def __init__(self, local_store: LocalProgressStore, future_skew_seconds: float = 300.0):
        """
        Initialize checkpoint tracker.

        Args:
            local_store: Local store that persists checkpoints
            future_skew_seconds: Tolerated clock skew before a checkpoint
                timestamp in the future is rejected
        """
        self._local_store = local_store
        self._future_skew = timedelta(seconds=future_skew_seconds)

    async def load(self, user_id: str) -> SyncState:
        """
        Load the checkpoint for a user.

        Args:
            user_id: User whose checkpoint is loaded

        Returns:
            Stored SyncState (a fresh one for users that never synced)

        Raises:
            InvalidSyncStateError: If the store fails or the checkpoint is unusable
        """
        try:
            state = await self._local_store.get_checkpoint(user_id)
        except Exception as e:
            log.error("failed_to_load_checkpoint", user_id=user_id, error=str(e))
            raise InvalidSyncStateError(f"Failed to load sync state for {user_id}: {e}") from e

        if state is None:
            log.info("no_checkpoint_found", user_id=user_id)
            return SyncState()

        if not isinstance(state, SyncState):
            log.error("invalid_checkpoint_type", user_id=user_id, type=type(state).__name__)
            raise InvalidSyncStateError(
                f"Checkpoint for {user_id} has unexpected type {type(state).__name__}"
            )

        if (
            state.last_sync_timestamp is not None
            and state.last_sync_timestamp > utc_now() + self._future_skew
        ):
            log.error(
                "checkpoint_in_future",
                user_id=user_id,
                last_sync_timestamp=state.last_sync_timestamp,
            )
            raise InvalidSyncStateError(
                f"Checkpoint for {user_id} is in the future: {state.last_sync_timestamp.isoformat()}"
            )

        log.debug(
            "checkpoint_loaded",
            user_id=user_id,
            last_sync_timestamp=state.last_sync_timestamp,
            pending_retry=len(state.pending_retry),
        )
        return state

    async def save(self, state: SyncState, user_id: str) -> WriteResult:
        """Persist a checkpoint, replacing the previous one."""
        try:
            await self._local_store.save_checkpoint(state, user_id)
        except Exception as e:
            return WriteResult.failure(e)
        return WriteResult.success()

    async def mark_synced(self, ids: list[str]) -> WriteResult:
        """Flag records as synced in local storage."""
        if not ids:
            return WriteResult.success()
        try:
            await self._local_store.mark_synced(ids)
        except Exception as e:
            return WriteResult.failure(e)
        return WriteResult.success()

    @staticmethod
    def snapshot_for_retry(previous: SyncState, local_records: list[ProgressRecord]) -> SyncState:
        """
        Build the checkpoint written when a cycle aborts.

        The cursor and synced ids stay unchanged; the already fetched local
        records become the retry queue.
        """
        return SyncState(
            last_sync_timestamp=previous.last_sync_timestamp,
            synced_item_ids=previous.synced_item_ids,
            pending_retry=list(local_records),
        )
