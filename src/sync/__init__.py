"""Synchronization components for reconciling local and remote progress."""

from src.sync.batch_pusher import BatchPusher, PushOutcome
from src.sync.cache import TTLCache
from src.sync.checkpoint import CheckpointTracker, WriteResult
from src.sync.conflict_detector import ConflictDetector
from src.sync.conflict_resolver import ConflictResolver
from src.sync.errors import (
    InvalidSyncStateError,
    LocalStoreError,
    NetworkUnavailableError,
    NoItemsToSyncError,
    SyncConfigurationError,
    SyncError,
)
from src.sync.handler import (
    CommandResult,
    ProgressSyncedEvent,
    SyncProgressCommand,
    SyncProgressHandler,
)
from src.sync.orchestrator import SyncOrchestrator, SyncPlan, partition

__all__ = [
    "BatchPusher",
    "CheckpointTracker",
    "CommandResult",
    "ConflictDetector",
    "ConflictResolver",
    "InvalidSyncStateError",
    "LocalStoreError",
    "NetworkUnavailableError",
    "NoItemsToSyncError",
    "ProgressSyncedEvent",
    "PushOutcome",
    "SyncConfigurationError",
    "SyncError",
    "SyncOrchestrator",
    "SyncPlan",
    "SyncProgressCommand",
    "SyncProgressHandler",
    "TTLCache",
    "WriteResult",
    "partition",
]
