"""Data models for the progress sync engine."""

from src.models.config import (
    AppConfig,
    CacheConfig,
    LoggingConfig,
    SyncConfig,
)
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

__all__ = [
    "ProgressRecord",
    "ProgressConflict",
    "ConflictResolution",
    "ConflictStrategy",
    "DetectionResult",
    "RecordSide",
    "SyncMetadata",
    "SyncResult",
    "SyncState",
    "utc_now",
    "AppConfig",
    "CacheConfig",
    "LoggingConfig",
    "SyncConfig",
]
