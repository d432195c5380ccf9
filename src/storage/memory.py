"""In-memory implementations of the local store and remote transport."""

from datetime import datetime

import structlog

from src.models.progress import ProgressRecord, SyncState

log = structlog.stdlib.get_logger()

RecordKey = tuple[str, str]


def _key(record: ProgressRecord) -> RecordKey:
    return (record.user_id, record.material_id)


class InMemoryProgressStore:
    """Local progress store kept in process memory.

    Records are unique per (user_id, material_id); saving a record for a
    material that is already stored replaces it.
    """

    def __init__(self, records: list[ProgressRecord] | None = None):
        self._records: dict[RecordKey, ProgressRecord] = {}
        self._checkpoints: dict[str, SyncState] = {}
        for record in records or []:
            self._records[_key(record)] = record

    async def unsynced_since(
        self, user_id: str, since: datetime | None
    ) -> list[ProgressRecord]:
        return [
            record
            for record in self._records.values()
            if record.user_id == user_id
            and (not record.is_synced or (since is not None and record.last_updated > since))
        ]

    async def save_records(self, records: list[ProgressRecord]) -> None:
        for record in records:
            self._records[_key(record)] = record
        log.debug("local_records_saved", count=len(records))

    async def mark_synced(self, ids: list[str]) -> None:
        wanted = set(ids)
        for key, record in list(self._records.items()):
            if record.id in wanted and not record.is_synced:
                self._records[key] = record.mark_synced()

    async def get_checkpoint(self, user_id: str) -> SyncState:
        return self._checkpoints.get(user_id, SyncState())

    async def save_checkpoint(self, state: SyncState, user_id: str) -> None:
        self._checkpoints[user_id] = state

    def put(self, record: ProgressRecord) -> None:
        """Record local progress, as the app does when a learner advances."""
        self._records[_key(record)] = record

    def get(self, user_id: str, material_id: str) -> ProgressRecord | None:
        return self._records.get((user_id, material_id))

    def records(self, user_id: str | None = None) -> list[ProgressRecord]:
        return [r for r in self._records.values() if user_id is None or r.user_id == user_id]


class InMemoryRemoteTransport:
    """Remote progress store kept in process memory.

    Set ``online`` to False to make every call fail with ConnectionError.
    """

    def __init__(self, records: list[ProgressRecord] | None = None, online: bool = True):
        self._records: dict[RecordKey, ProgressRecord] = {}
        self.online = online
        self.push_calls: list[list[ProgressRecord]] = []
        for record in records or []:
            self._records[_key(record)] = record

    async def fetch_since(self, user_id: str, since: datetime | None) -> list[ProgressRecord]:
        self._check_online()
        return [
            record
            for record in self._records.values()
            if record.user_id == user_id and (since is None or record.last_updated > since)
        ]

    async def push_batch(self, records: list[ProgressRecord]) -> list[ProgressRecord]:
        self._check_online()
        self.push_calls.append(list(records))
        accepted = [record.mark_synced() for record in records]
        for record in accepted:
            self._records[_key(record)] = record
        return accepted

    def put(self, record: ProgressRecord) -> None:
        """Record progress made on another device or server side."""
        self._records[_key(record)] = record

    def get(self, user_id: str, material_id: str) -> ProgressRecord | None:
        return self._records.get((user_id, material_id))

    def _check_online(self) -> None:
        if not self.online:
            raise ConnectionError("remote progress store is offline")
