"""Pydantic models for material progress records and sync results."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _new_id() -> str:
    return uuid4().hex


class ConflictStrategy(str, Enum):
    """How a conflict between a local and a remote record is settled."""

    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    MOST_RECENT = "most_recent"
    MANUAL = "manual"


class RecordSide(str, Enum):
    """Which side of a sync a record originates from."""

    LOCAL = "local"
    REMOTE = "remote"


class ProgressRecord(BaseModel):
    """Progress of one user on one material."""

    id: str = Field(default_factory=_new_id, description="Opaque record identifier")
    user_id: str = Field(default=..., min_length=1, description="Owning user identifier")
    material_id: str = Field(
        default=..., min_length=1, description="Material (subject) the progress refers to"
    )
    percentage: int = Field(default=..., ge=0, le=100, description="Completion percentage")
    last_updated: datetime = Field(default=..., description="Last modification timestamp")
    is_synced: bool = Field(default=False, description="Whether the record is known to be synced")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "id": "6f1c2a7e9b2d4c0e8a4b1d3f5e7a9c11",
                "user_id": "student-42",
                "material_id": "algebra-101",
                "percentage": 70,
                "last_updated": "2024-01-15T14:30:00Z",
                "is_synced": False,
            }
        },
    }

    @field_validator("last_updated")
    @classmethod
    def normalize_last_updated(cls, v: datetime) -> datetime:
        """Ensure timestamps are timezone-aware."""
        return _as_utc(v)

    def mark_synced(self) -> "ProgressRecord":
        """Return a copy of this record flagged as synced."""
        return self.model_copy(update={"is_synced": True})


class ProgressConflict(BaseModel):
    """A local and a remote record for the same material that disagree."""

    id: str = Field(default_factory=_new_id, description="Conflict identifier")
    material_id: str = Field(default=..., description="Material both records refer to")
    local_record: ProgressRecord = Field(default=..., description="Record from local storage")
    remote_record: ProgressRecord = Field(default=..., description="Record from the remote store")
    detected_at: datetime = Field(default_factory=utc_now, description="Detection timestamp")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_same_material(self) -> "ProgressConflict":
        """Both records must refer to the conflict's material."""
        if (
            self.local_record.material_id != self.material_id
            or self.remote_record.material_id != self.material_id
        ):
            raise ValueError("local_record and remote_record must share the conflict material_id")
        return self


class ConflictResolution(BaseModel):
    """Outcome of applying a strategy to a conflict."""

    resolved_record: ProgressRecord | None = Field(
        default=None, description="Winning record, None when a manual decision is needed"
    )
    winner: RecordSide | None = Field(default=None, description="Side the winning record came from")
    requires_manual_decision: bool = Field(default=False)
    reason: str = Field(default=..., description="Human readable explanation")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_consistency(self) -> "ConflictResolution":
        if self.requires_manual_decision != (self.resolved_record is None):
            raise ValueError("resolved_record must be None exactly when a manual decision is required")
        if (self.resolved_record is None) != (self.winner is None):
            raise ValueError("winner must be set exactly when a record is resolved")
        return self


class DetectionResult(BaseModel):
    """Partition of local and remote records produced by conflict detection."""

    conflicts: list[ProgressConflict] = Field(default_factory=list)
    non_conflicting_local: list[ProgressRecord] = Field(
        default_factory=list,
        description="Local-only records plus local records that already match remote",
    )
    non_conflicting_remote: list[ProgressRecord] = Field(
        default_factory=list, description="Remote-only records"
    )
    matched_material_ids: frozenset[str] = Field(
        default_factory=frozenset, description="Materials where both sides already agree"
    )

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


class SyncState(BaseModel):
    """Per-user checkpoint persisted between sync cycles."""

    last_sync_timestamp: datetime | None = Field(
        default=None, description="Last successful sync, None means a full pull is required"
    )
    synced_item_ids: frozenset[str] = Field(
        default_factory=frozenset, description="Record ids confirmed synced"
    )
    pending_retry: list[ProgressRecord] = Field(
        default_factory=list, description="Records queued for retry"
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "last_sync_timestamp": "2024-01-15T14:30:00Z",
                "synced_item_ids": ["6f1c2a7e9b2d4c0e8a4b1d3f5e7a9c11"],
                "pending_retry": [],
            }
        },
    }

    @field_validator("last_sync_timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v) if v is not None else None

    @property
    def is_first_sync(self) -> bool:
        return self.last_sync_timestamp is None


class SyncMetadata(BaseModel):
    """Counters describing a completed cycle. Observational only."""

    pushed_count: int = Field(default=0, ge=0)
    pulled_count: int = Field(default=0, ge=0)
    auto_resolved_count: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    was_incremental: bool = Field(default=True)

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Everything a caller learns from one sync cycle."""

    synced_items: list[ProgressRecord] = Field(default_factory=list)
    conflicts: list[ProgressConflict] = Field(
        default_factory=list, description="Conflicts left for a manual decision"
    )
    strategy: ConflictStrategy = Field(default=...)
    synced_at: datetime = Field(default_factory=utc_now)
    pending_retry: list[ProgressRecord] = Field(default_factory=list)
    metadata: SyncMetadata = Field(default_factory=SyncMetadata)

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def is_fully_successful(self) -> bool:
        """True when nothing is pending retry and no conflict is left open."""
        return not self.pending_retry and not self.conflicts
