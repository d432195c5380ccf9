"""Interfaces of the storage and transport collaborators used by the engine."""

from datetime import datetime
from typing import Protocol

from src.models.progress import ProgressRecord, SyncState


class LocalProgressStore(Protocol):
    """Local persistence of progress records and sync checkpoints."""

    async def unsynced_since(
        self, user_id: str, since: datetime | None
    ) -> list[ProgressRecord]:
        """Records not yet synced, or modified after ``since``."""
        ...

    async def save_records(self, records: list[ProgressRecord]) -> None:
        ...

    async def mark_synced(self, ids: list[str]) -> None:
        ...

    async def get_checkpoint(self, user_id: str) -> SyncState:
        ...

    async def save_checkpoint(self, state: SyncState, user_id: str) -> None:
        ...


class RemoteProgressTransport(Protocol):
    """Access to the authoritative remote progress store."""

    async def fetch_since(self, user_id: str, since: datetime | None) -> list[ProgressRecord]:
        """Records changed after ``since``; every record when ``since`` is None."""
        ...

    async def push_batch(self, records: list[ProgressRecord]) -> list[ProgressRecord]:
        """Send one chunk and return the subset the remote accepted."""
        ...
