"""Tests for the sync command handler and the events it emits."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from src.models.progress import ConflictStrategy, ProgressRecord
from src.storage.memory import InMemoryProgressStore, InMemoryRemoteTransport
from src.sync.cache import TTLCache
from src.sync.errors import NetworkUnavailableError
from src.sync.handler import (
    PROGRESS_CACHE_INVALIDATED,
    PROGRESS_CONFLICTS_DETECTED,
    PROGRESS_SYNCED,
    ProgressSyncedEvent,
    SyncProgressCommand,
    SyncProgressHandler,
)
from src.sync.orchestrator import SyncOrchestrator

USER = "student-42"
WHEN = datetime(2024, 1, 15, tzinfo=timezone.utc)


def record(material_id: str, percentage: int) -> ProgressRecord:
    return ProgressRecord(
        user_id=USER, material_id=material_id, percentage=percentage, last_updated=WHEN
    )


class RecordingPublisher:
    def __init__(self):
        self.events: list[ProgressSyncedEvent] = []

    def __call__(self, event: ProgressSyncedEvent) -> None:
        self.events.append(event)


def handler_for(local=None, remote=None, online=True, **kwargs) -> SyncProgressHandler:
    orchestrator = SyncOrchestrator(
        InMemoryProgressStore(local or []), InMemoryRemoteTransport(remote or [], online=online)
    )
    return SyncProgressHandler(orchestrator, **kwargs)


class TestCommand:
    @given(user_id=st.text(alphabet=" \t\n", max_size=5))
    def test_blank_user_id_is_rejected(self, user_id: str):
        with pytest.raises(ValidationError):
            SyncProgressCommand(user_id=user_id)

    def test_defaults(self):
        command = SyncProgressCommand(user_id=USER)

        assert command.strategy is ConflictStrategy.MOST_RECENT
        assert not command.force_full_sync
        assert command.metadata == {}


class TestHandle:
    @pytest.mark.asyncio
    async def test_successful_sync_publishes_event_and_invalidates_cache(self):
        cache: TTLCache[str] = TTLCache()
        cache.put(USER, "stale dashboard")
        publisher = RecordingPublisher()
        handler = handler_for([record("A", 40)], publisher=publisher, cache=cache)

        outcome = await handler.handle(
            SyncProgressCommand(user_id=USER, metadata={"traceId": "t-1"})
        )

        assert outcome.success
        assert outcome.events == [PROGRESS_SYNCED, PROGRESS_CACHE_INVALIDATED]
        assert cache.get(USER) is None
        assert len(publisher.events) == 1
        event: ProgressSyncedEvent = publisher.events[0]
        assert event.user_id == USER
        assert event.pushed_count == 1
        assert event.event_type == "progress.synced"
        assert event.was_fully_successful
        assert event.metadata["traceId"] == "t-1"
        assert event.metadata["syncedItemsCount"] == "1"
        assert outcome.metadata["pushedCount"] == "1"
        assert outcome.metadata["isPartialSuccess"] == "false"
        assert not outcome.is_partial_success

    @pytest.mark.asyncio
    async def test_nothing_synced_keeps_cache(self):
        cache: TTLCache[str] = TTLCache()
        cache.put(USER, "dashboard")
        handler = handler_for(cache=cache)

        outcome = await handler.handle(SyncProgressCommand(user_id=USER))

        assert outcome.events == [PROGRESS_SYNCED]
        assert cache.get(USER) == "dashboard"

    @pytest.mark.asyncio
    async def test_unresolved_conflicts_are_reported(self):
        handler = handler_for([record("A", 10)], [record("A", 90)])

        outcome = await handler.handle(
            SyncProgressCommand(user_id=USER, strategy=ConflictStrategy.MANUAL)
        )

        assert outcome.success
        assert PROGRESS_CONFLICTS_DETECTED in outcome.events
        assert outcome.is_partial_success
        assert outcome.metadata["conflictsCount"] == "1"
        assert outcome.metadata["conflictStrategy"] == "manual"

    @pytest.mark.asyncio
    async def test_async_publisher_is_awaited(self):
        publisher = AsyncMock()
        handler = handler_for([record("A", 40)], publisher=publisher)

        await handler.handle(SyncProgressCommand(user_id=USER))

        publisher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_publisher_failure_does_not_fail_the_command(self):
        publisher = MagicMock(side_effect=RuntimeError("bus down"))
        handler = handler_for([record("A", 40)], publisher=publisher)

        outcome = await handler.handle(SyncProgressCommand(user_id=USER))

        assert outcome.success

    @pytest.mark.asyncio
    async def test_sync_error_becomes_failed_result(self):
        publisher = RecordingPublisher()
        handler = handler_for([record("A", 40)], online=False, publisher=publisher)

        outcome = await handler.handle(SyncProgressCommand(user_id=USER, force_full_sync=True))

        assert not outcome.success
        assert outcome.value is None
        assert outcome.error_type == NetworkUnavailableError.__name__
        assert outcome.metadata["errorType"] == "NetworkUnavailableError"
        assert outcome.metadata["forceFullSync"] == "true"
        assert outcome.events == []
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self):
        orchestrator = MagicMock()
        orchestrator.sync = AsyncMock(side_effect=RuntimeError("bug"))
        handler = SyncProgressHandler(orchestrator)

        with pytest.raises(RuntimeError):
            await handler.handle(SyncProgressCommand(user_id=USER))
