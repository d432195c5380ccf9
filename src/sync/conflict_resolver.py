"""Strategy-based resolution of progress conflicts."""

import structlog

from src.models.progress import (
    ConflictResolution,
    ConflictStrategy,
    ProgressConflict,
    RecordSide,
)

log = structlog.stdlib.get_logger()


class ConflictResolver:
    """Applies a ConflictStrategy to a single conflict.

    Stateless: one instance can be shared by concurrent sync cycles.
    """

    def resolve(
        self, conflict: ProgressConflict, strategy: ConflictStrategy
    ) -> ConflictResolution:
        """
        Resolve a conflict according to the given strategy.

        ``MOST_RECENT`` picks the record with the strictly later
        ``last_updated``. When both timestamps are equal the local record wins.

        Args:
            conflict: Conflict between a local and a remote record
            strategy: Strategy chosen for the whole sync cycle

        Returns:
            ConflictResolution with the winning record, or a manual-decision marker

        Raises:
            ValueError: If the strategy is not supported
        """
        strategy = ConflictStrategy(strategy)

        if strategy is ConflictStrategy.LOCAL_WINS:
            resolution = self._pick(conflict, RecordSide.LOCAL, "Local wins strategy applied")
        elif strategy is ConflictStrategy.REMOTE_WINS:
            resolution = self._pick(conflict, RecordSide.REMOTE, "Remote wins strategy applied")
        elif strategy is ConflictStrategy.MOST_RECENT:
            resolution = self._most_recent(conflict)
        elif strategy is ConflictStrategy.MANUAL:
            resolution = ConflictResolution(
                requires_manual_decision=True,
                reason="Manual resolution required",
            )
        else:
            raise ValueError(f"Unsupported conflict strategy: {strategy}")

        log.debug(
            "conflict_resolved",
            material_id=conflict.material_id,
            strategy=strategy.value,
            winner=resolution.winner.value if resolution.winner else None,
            reason=resolution.reason,
        )
        return resolution

    def _most_recent(self, conflict: ProgressConflict) -> ConflictResolution:
        local_updated = conflict.local_record.last_updated
        remote_updated = conflict.remote_record.last_updated

        if remote_updated > local_updated:
            return self._pick(conflict, RecordSide.REMOTE, "Remote is more recent")
        if local_updated > remote_updated:
            return self._pick(conflict, RecordSide.LOCAL, "Local is more recent")
        return self._pick(conflict, RecordSide.LOCAL, "Timestamps are equal, local wins the tie")

    @staticmethod
    def _pick(conflict: ProgressConflict, side: RecordSide, reason: str) -> ConflictResolution:
        record = conflict.local_record if side is RecordSide.LOCAL else conflict.remote_record
        return ConflictResolution(resolved_record=record, winner=side, reason=reason)
