"""Tests for checkpoint loading and best-effort writes.

**Property: a retry snapshot keeps the cursor and queues the local records**
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.models.progress import ProgressRecord, SyncState, utc_now
from src.storage.memory import InMemoryProgressStore
from src.sync.checkpoint import CheckpointTracker, WriteResult
from src.sync.errors import InvalidSyncStateError


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


class TestLoad:
    @pytest.mark.asyncio
    async def test_missing_checkpoint_is_first_sync(self):
        store = AsyncMock()
        store.get_checkpoint.return_value = None

        state = await CheckpointTracker(store).load("u1")

        assert state == SyncState()
        assert state.is_first_sync

    @pytest.mark.asyncio
    async def test_stored_checkpoint_is_returned(self, store):
        saved = SyncState(
            last_sync_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            synced_item_ids=frozenset({"a", "b"}),
        )
        await store.save_checkpoint(saved, "u1")

        assert await CheckpointTracker(store).load("u1") == saved

    @pytest.mark.asyncio
    async def test_store_failure_raises_invalid_state(self):
        store = AsyncMock()
        store.get_checkpoint.side_effect = OSError("unreadable")

        with pytest.raises(InvalidSyncStateError) as exc_info:
            await CheckpointTracker(store).load("u1")

        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_wrong_type_raises_invalid_state(self):
        store = AsyncMock()
        store.get_checkpoint.return_value = {"last_sync_timestamp": "yesterday"}

        with pytest.raises(InvalidSyncStateError):
            await CheckpointTracker(store).load("u1")

    @pytest.mark.asyncio
    async def test_small_clock_skew_is_tolerated(self, store):
        await store.save_checkpoint(
            SyncState(last_sync_timestamp=utc_now() + timedelta(seconds=30)), "u1"
        )

        state = await CheckpointTracker(store, future_skew_seconds=300).load("u1")

        assert state.last_sync_timestamp is not None

    @pytest.mark.asyncio
    async def test_far_future_checkpoint_is_rejected(self, store):
        await store.save_checkpoint(
            SyncState(last_sync_timestamp=utc_now() + timedelta(hours=2)), "u1"
        )

        with pytest.raises(InvalidSyncStateError):
            await CheckpointTracker(store, future_skew_seconds=300).load("u1")


class TestWrites:
    @pytest.mark.asyncio
    async def test_save_replaces_previous_checkpoint(self, store):
        tracker = CheckpointTracker(store)
        first = SyncState(last_sync_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
        second = SyncState(last_sync_timestamp=datetime(2024, 2, 1, tzinfo=timezone.utc))

        assert (await tracker.save(first, "u1")).ok
        assert (await tracker.save(second, "u1")).ok
        assert await store.get_checkpoint("u1") == second

    @pytest.mark.asyncio
    async def test_save_failure_is_returned_not_raised(self):
        store = AsyncMock()
        store.save_checkpoint.side_effect = OSError("disk full")

        write = await CheckpointTracker(store).save(SyncState(), "u1")

        assert not write.ok
        assert write.error == "OSError: disk full"

    @pytest.mark.asyncio
    async def test_mark_synced_failure_is_returned_not_raised(self):
        store = AsyncMock()
        store.mark_synced.side_effect = RuntimeError("locked")

        write = await CheckpointTracker(store).mark_synced(["a"])

        assert write == WriteResult(ok=False, error="RuntimeError: locked")

    @pytest.mark.asyncio
    async def test_mark_synced_with_no_ids_skips_the_store(self):
        store = AsyncMock()

        write = await CheckpointTracker(store).mark_synced([])

        assert write.ok
        store.mark_synced.assert_not_awaited()


@given(
    percentages=st.lists(st.integers(min_value=0, max_value=100), max_size=15),
    synced_ids=st.frozensets(st.text(min_size=1, max_size=8), max_size=10),
    cursor=st.none() | st.datetimes(min_value=datetime(2020, 1, 1), max_value=datetime(2025, 1, 1)),
)
def test_retry_snapshot_keeps_cursor(percentages, synced_ids, cursor):
    """An aborted cycle never moves the cursor forward."""
    previous = SyncState(last_sync_timestamp=cursor, synced_item_ids=synced_ids)
    local = [
        ProgressRecord(user_id="u1", material_id=f"m{i}", percentage=p, last_updated=datetime(2024, 1, 1))
        for i, p in enumerate(percentages)
    ]

    snapshot = CheckpointTracker.snapshot_for_retry(previous, local)

    assert snapshot.last_sync_timestamp == previous.last_sync_timestamp
    assert snapshot.synced_item_ids == synced_ids
    assert snapshot.pending_retry == local
