"""Property-based tests for progress sync models.

Feature: progress-sync-engine
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from src.models import (
    ConflictResolution,
    ProgressConflict,
    ProgressRecord,
    RecordSide,
    SyncResult,
    SyncState,
    ConflictStrategy,
)

log = structlog.stdlib.get_logger()

identifiers = st.text(
    min_size=1, max_size=12, alphabet=st.characters(whitelist_categories=("Ll", "Nd"))
)


@st.composite
def progress_record_strategy(draw):
    """Generate valid ProgressRecord instances."""
    updated_naive = draw(
        st.datetimes(min_value=datetime(2020, 1, 1), max_value=datetime(2030, 12, 31))
    )
    return ProgressRecord(
        user_id=draw(identifiers),
        material_id=draw(identifiers),
        percentage=draw(st.integers(min_value=0, max_value=100)),
        last_updated=updated_naive.replace(tzinfo=timezone.utc),
        is_synced=draw(st.booleans()),
    )


@given(record=progress_record_strategy())
def test_mark_synced_returns_new_record(record: ProgressRecord):
    """Marking a record synced never mutates the original.

    For any record, mark_synced() returns a record with the flag set and
    every other field unchanged, while the original keeps its flag.
    """
    log.info("test_mark_synced_returns_new_record", record_id=record.id)

    original_flag = record.is_synced
    synced = record.mark_synced()

    assert synced.is_synced is True
    assert record.is_synced is original_flag
    assert synced.model_dump(exclude={"is_synced"}) == record.model_dump(exclude={"is_synced"})


@given(record=progress_record_strategy())
def test_records_are_immutable(record: ProgressRecord):
    """Assigning to a field of a frozen record raises."""
    with pytest.raises(ValidationError):
        record.percentage = 10


@given(st.integers().filter(lambda x: x < 0 or x > 100))
def test_percentage_bounds_validation_error(percentage: int):
    """Percentages outside 0..100 are rejected."""
    with pytest.raises(ValidationError) as exc_info:
        ProgressRecord(
            user_id="u1",
            material_id="m1",
            percentage=percentage,
            last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    assert "percentage" in str(exc_info.value)


def test_naive_timestamps_are_treated_as_utc():
    record = ProgressRecord(
        user_id="u1", material_id="m1", percentage=5, last_updated=datetime(2024, 1, 1, 12, 0)
    )
    assert record.last_updated.tzinfo is not None
    assert record.last_updated == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_record_ids_are_unique_by_default():
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    first = ProgressRecord(user_id="u1", material_id="m1", percentage=1, last_updated=when)
    second = ProgressRecord(user_id="u1", material_id="m1", percentage=1, last_updated=when)
    assert first.id != second.id


def test_conflict_requires_matching_material():
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    local = ProgressRecord(user_id="u1", material_id="m1", percentage=10, last_updated=when)
    remote = ProgressRecord(user_id="u1", material_id="m2", percentage=20, last_updated=when)

    with pytest.raises(ValidationError):
        ProgressConflict(material_id="m1", local_record=local, remote_record=remote)


def test_resolution_consistency_rules():
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    record = ProgressRecord(user_id="u1", material_id="m1", percentage=10, last_updated=when)

    ConflictResolution(resolved_record=record, winner=RecordSide.LOCAL, reason="ok")
    ConflictResolution(requires_manual_decision=True, reason="manual")

    with pytest.raises(ValidationError):
        ConflictResolution(resolved_record=record, requires_manual_decision=True, reason="bad")
    with pytest.raises(ValidationError):
        ConflictResolution(resolved_record=record, reason="missing winner")
    with pytest.raises(ValidationError):
        ConflictResolution(reason="neither record nor manual flag")


def test_sync_state_defaults_to_first_sync():
    state = SyncState()
    assert state.is_first_sync
    assert state.synced_item_ids == frozenset()
    assert state.pending_retry == []


@given(ids=st.lists(identifiers, max_size=20))
def test_sync_state_round_trips_through_json(ids: list[str]):
    """A checkpoint survives serialization, as a storage backend would persist it."""
    state = SyncState(
        last_sync_timestamp=datetime(2024, 3, 1, tzinfo=timezone.utc),
        synced_item_ids=frozenset(ids),
    )
    restored = SyncState.model_validate_json(state.model_dump_json())
    assert restored == state


def test_sync_result_success_flags():
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    local = ProgressRecord(user_id="u1", material_id="m1", percentage=10, last_updated=when)
    remote = ProgressRecord(
        user_id="u1", material_id="m1", percentage=20, last_updated=when + timedelta(hours=1)
    )
    conflict = ProgressConflict(material_id="m1", local_record=local, remote_record=remote)

    clean = SyncResult(strategy=ConflictStrategy.MOST_RECENT)
    with_conflict = SyncResult(strategy=ConflictStrategy.MANUAL, conflicts=[conflict])
    with_retry = SyncResult(strategy=ConflictStrategy.MOST_RECENT, pending_retry=[local])

    assert clean.is_fully_successful and not clean.has_conflicts
    assert with_conflict.has_conflicts and not with_conflict.is_fully_successful
    assert not with_retry.is_fully_successful
