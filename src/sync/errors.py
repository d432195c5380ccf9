"""Exceptions raised by the sync engine.

Only total failures are raised to callers. Partial failures (a push chunk
or a pull save failing) are reported through ``SyncResult.pending_retry``.
"""


class SyncError(Exception):
    """Base class for sync engine errors."""


class NetworkUnavailableError(SyncError):
    """The remote store could not be reached; the whole cycle was aborted."""


class NoItemsToSyncError(SyncError):
    """Neither side had anything to synchronize."""


class InvalidSyncStateError(SyncError):
    """The stored checkpoint could not be read or is not usable."""


class LocalStoreError(SyncError):
    """Local storage failed while fetching records for a cycle."""


class SyncConfigurationError(SyncError):
    """The engine was configured with invalid values."""
