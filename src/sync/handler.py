"""Command handler that runs a sync cycle and publishes its outcome."""

import inspect
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, field_validator

from src.models.progress import ConflictStrategy, SyncResult, utc_now
from src.sync.cache import TTLCache
from src.sync.errors import SyncError
from src.sync.orchestrator import SyncOrchestrator

log = structlog.stdlib.get_logger()

PROGRESS_SYNCED = "ProgressSyncedEvent"
PROGRESS_CACHE_INVALIDATED = "ProgressCacheInvalidatedEvent"
PROGRESS_CONFLICTS_DETECTED = "ProgressConflictsDetectedEvent"


class SyncProgressCommand(BaseModel):
    """Request to synchronize one user's progress."""

    user_id: str = Field(default=..., description="User whose progress is synchronized")
    force_full_sync: bool = Field(default=False)
    strategy: ConflictStrategy = Field(default=ConflictStrategy.MOST_RECENT)
    metadata: dict[str, str] = Field(default_factory=dict, description="Tracing metadata")

    model_config = {"frozen": True}

    @field_validator("user_id")
    @classmethod
    def user_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("user_id cannot be empty")
        return v


class ProgressSyncedEvent(BaseModel):
    """Domain event emitted after a successful sync cycle."""

    event_id: str = Field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = Field(default_factory=utc_now)
    user_id: str
    synced_items_count: int = Field(ge=0)
    conflicts_count: int = Field(ge=0)
    auto_resolved_count: int = Field(default=0, ge=0)
    pending_retry_count: int = Field(ge=0)
    strategy: ConflictStrategy
    pushed_count: int = Field(ge=0)
    pulled_count: int = Field(ge=0)
    duration_seconds: float = Field(ge=0.0)
    was_incremental: bool
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def event_type(self) -> str:
        return "progress.synced"

    @property
    def was_fully_successful(self) -> bool:
        return self.pending_retry_count == 0 and self.conflicts_count == 0

    @classmethod
    def from_result(
        cls, user_id: str, result: SyncResult, extra_metadata: dict[str, str] | None = None
    ) -> "ProgressSyncedEvent":
        """Build the event from a sync result, enriching the caller's metadata."""
        meta = result.metadata
        metadata = {
            **(extra_metadata or {}),
            "userId": user_id,
            "syncedItemsCount": str(len(result.synced_items)),
            "conflictsCount": str(len(result.conflicts)),
            "pendingRetryCount": str(len(result.pending_retry)),
            "strategy": result.strategy.value,
        }
        return cls(
            user_id=user_id,
            synced_items_count=len(result.synced_items),
            conflicts_count=len(result.conflicts),
            auto_resolved_count=meta.auto_resolved_count,
            pending_retry_count=len(result.pending_retry),
            strategy=result.strategy,
            pushed_count=meta.pushed_count,
            pulled_count=meta.pulled_count,
            duration_seconds=meta.duration_seconds,
            was_incremental=meta.was_incremental,
            metadata=metadata,
        )


class CommandResult(BaseModel):
    """Outcome of handling a SyncProgressCommand."""

    success: bool
    value: SyncResult | None = None
    error: str | None = None
    error_type: str | None = None
    events: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_partial_success(self) -> bool:
        return self.value is not None and not self.value.is_fully_successful


EventPublisher = Callable[[ProgressSyncedEvent], Any]


class SyncProgressHandler:
    """Runs SyncProgressCommand through the orchestrator."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        publisher: EventPublisher | None = None,
        cache: TTLCache | None = None,
    ):
        """
        Args:
            orchestrator: Engine that runs the sync cycle
            publisher: Optional callable (sync or async) receiving ProgressSyncedEvent
            cache: Optional per-user cache invalidated when progress changed
        """
        self._orchestrator = orchestrator
        self._publisher = publisher
        self._cache = cache

    async def handle(self, command: SyncProgressCommand) -> CommandResult:
        base_metadata = {
            "userId": command.user_id,
            "forceFullSync": str(command.force_full_sync).lower(),
            "conflictStrategy": command.strategy.value,
        }

        try:
            result = await self._orchestrator.sync(
                command.user_id,
                force_full_sync=command.force_full_sync,
                strategy=command.strategy,
            )
        except SyncError as e:
            log.error(
                "sync_command_failed",
                user_id=command.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CommandResult(
                success=False,
                error=str(e),
                error_type=type(e).__name__,
                metadata={**base_metadata, "errorType": type(e).__name__},
            )

        event = ProgressSyncedEvent.from_result(command.user_id, result, command.metadata)
        await self._publish(event)

        events = [PROGRESS_SYNCED]
        if result.synced_items:
            if self._cache is not None:
                self._cache.invalidate(command.user_id)
            events.append(PROGRESS_CACHE_INVALIDATED)
        if result.conflicts:
            events.append(PROGRESS_CONFLICTS_DETECTED)

        partial = not result.is_fully_successful
        metadata = {
            **base_metadata,
            "syncedItemsCount": str(len(result.synced_items)),
            "conflictsCount": str(len(result.conflicts)),
            "pendingRetryCount": str(len(result.pending_retry)),
            "pushedCount": str(result.metadata.pushed_count),
            "pulledCount": str(result.metadata.pulled_count),
            "durationSeconds": f"{result.metadata.duration_seconds:.3f}",
            "wasIncremental": str(result.metadata.was_incremental).lower(),
            "isPartialSuccess": str(partial).lower(),
            "syncedAt": result.synced_at.isoformat(),
        }

        log.info("sync_command_handled", user_id=command.user_id, events=events, partial=partial)
        return CommandResult(success=True, value=result, events=events, metadata=metadata)

    async def _publish(self, event: ProgressSyncedEvent) -> None:
        if self._publisher is None:
            return
        try:
            outcome = self._publisher(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            log.warning("event_publish_failed", event_type=event.event_type, error=str(e))
