"""Chunked push of local records to the remote store."""

from typing import Sequence

import structlog
from pydantic import BaseModel, Field

from src.models.config import MAX_BATCH_SIZE_LIMIT
from src.models.progress import ProgressRecord
from src.sync.errors import SyncConfigurationError
from src.sync.protocols import RemoteProgressTransport
from src.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


class PushOutcome(BaseModel):
    """Records accepted by the remote and records that must be retried."""

    pushed: list[ProgressRecord] = Field(default_factory=list)
    failed: list[ProgressRecord] = Field(default_factory=list)
    batch_count: int = Field(default=0, ge=0)
    failed_batch_count: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def combine(cls, outcomes: Sequence["PushOutcome"]) -> "PushOutcome":
        """Fold per-chunk outcomes into one, preserving chunk order."""
        return cls(
            pushed=[record for outcome in outcomes for record in outcome.pushed],
            failed=[record for outcome in outcomes for record in outcome.failed],
            batch_count=sum(outcome.batch_count for outcome in outcomes),
            failed_batch_count=sum(outcome.failed_batch_count for outcome in outcomes),
        )


def chunk(records: Sequence[ProgressRecord], size: int) -> list[list[ProgressRecord]]:
    """Split records into contiguous chunks of at most ``size`` items."""
    if size < 1:
        raise SyncConfigurationError(f"Chunk size must be at least 1, got {size}")
    return [list(records[start : start + size]) for start in range(0, len(records), size)]


class BatchPusher:
    """Pushes records in bounded chunks, tolerating failure of individual chunks."""

    def __init__(
        self,
        transport: RemoteProgressTransport,
        max_batch_size: int = 50,
        push_retries: int = 0,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 30.0,
    ):
        """
        Initialize the pusher.

        Args:
            transport: Remote transport providing ``push_batch``
            max_batch_size: Maximum records per request, fixed for this instance
            push_retries: Retries per chunk before the chunk is failed
            retry_base_delay: Initial delay between chunk retries in seconds
            retry_max_delay: Maximum delay between chunk retries in seconds

        Raises:
            SyncConfigurationError: If max_batch_size is out of range
        """
        if not 1 <= max_batch_size <= MAX_BATCH_SIZE_LIMIT:
            log.error("invalid_batch_size", max_batch_size=max_batch_size)
            raise SyncConfigurationError(
                f"max_batch_size must be between 1 and {MAX_BATCH_SIZE_LIMIT}, got {max_batch_size}"
            )
        if push_retries < 0:
            raise SyncConfigurationError(f"push_retries must not be negative, got {push_retries}")

        self._transport = transport
        self.max_batch_size = max_batch_size
        self._push_retries = push_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

    async def push(self, records: list[ProgressRecord]) -> PushOutcome:
        """
        Push records chunk by chunk.

        A chunk that fails (after its retries) is failed as a whole and the
        remaining chunks are still attempted. Chunks accepted earlier are
        never rolled back. Records of an accepted chunk that the remote does
        not echo back are failed as well.

        Args:
            records: Records to push, in order

        Returns:
            PushOutcome with accepted records (marked synced) and failed records
        """
        batches = chunk(records, self.max_batch_size)
        outcome = PushOutcome.combine(
            [await self._push_chunk(index, batch) for index, batch in enumerate(batches)]
        )

        log.info(
            "push_completed",
            batches=outcome.batch_count,
            failed_batches=outcome.failed_batch_count,
            pushed=len(outcome.pushed),
            failed=len(outcome.failed),
        )
        return outcome

    async def _push_chunk(self, index: int, batch: list[ProgressRecord]) -> PushOutcome:
        try:
            accepted = await self._push_batch(batch)
        except Exception as e:
            log.warning(
                "push_batch_failed",
                batch_index=index,
                batch_size=len(batch),
                error=str(e),
                error_type=type(e).__name__,
            )
            return PushOutcome(failed=list(batch), batch_count=1, failed_batch_count=1)

        accepted_ids = {record.id for record in accepted}
        rejected = [record for record in batch if record.id not in accepted_ids]
        if rejected:
            log.warning("push_records_rejected", batch_index=index, rejected=len(rejected))
        log.debug(
            "push_batch_accepted",
            batch_index=index,
            batch_size=len(batch),
            accepted=len(accepted),
        )
        return PushOutcome(
            pushed=[record.mark_synced() for record in accepted],
            failed=rejected,
            batch_count=1,
        )

    async def _push_batch(self, batch: list[ProgressRecord]) -> list[ProgressRecord]:
        @exponential_backoff_retry(
            max_retries=self._push_retries,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
        )
        async def send() -> list[ProgressRecord]:
            return list(await self._transport.push_batch(batch))

        return await send()
