"""Conflict detection between local and remote progress records."""

from types import MappingProxyType
from typing import Iterable, Mapping

import structlog

from src.models.progress import DetectionResult, ProgressConflict, ProgressRecord

log = structlog.stdlib.get_logger()


def first_by_material(records: Iterable[ProgressRecord]) -> Mapping[str, ProgressRecord]:
    """
    Index records by material id, keeping the first record seen per material.

    Later duplicates are ignored. Insertion order follows first appearance.

    Args:
        records: Records in the order they were fetched

    Returns:
        Read-only mapping of material_id to its representative record
    """
    grouped: dict[str, ProgressRecord] = {}
    for record in records:
        grouped.setdefault(record.material_id, record)
    return MappingProxyType(grouped)


class ConflictDetector:
    """Partitions local and remote records into conflicts and one-sided records."""

    def detect(
        self,
        local_records: list[ProgressRecord],
        remote_records: list[ProgressRecord],
    ) -> DetectionResult:
        """
        Compare local and remote records material by material.

        Args:
            local_records: Records fetched from local storage
            remote_records: Records fetched from the remote store

        Returns:
            DetectionResult with conflicts, local-only records (plus matched
            local records marked synced), remote-only records and the set of
            materials both sides already agree on
        """
        log.debug(
            "detecting_conflicts",
            local_count=len(local_records),
            remote_count=len(remote_records),
        )

        local_by_material = first_by_material(local_records)
        remote_by_material = first_by_material(remote_records)

        shared = [m for m in local_by_material if m in remote_by_material]
        matched = frozenset(
            m for m in shared if self._agree(local_by_material[m], remote_by_material[m])
        )

        conflicts = [
            ProgressConflict(
                material_id=m,
                local_record=local_by_material[m],
                remote_record=remote_by_material[m],
            )
            for m in shared
            if m not in matched
        ]

        # Matched local records are emitted already marked synced
        non_conflicting_local = [
            record.mark_synced() if material_id in matched else record
            for material_id, record in local_by_material.items()
            if material_id in matched or material_id not in remote_by_material
        ]
        non_conflicting_remote = [
            record
            for material_id, record in remote_by_material.items()
            if material_id not in local_by_material
        ]

        result = DetectionResult(
            conflicts=conflicts,
            non_conflicting_local=non_conflicting_local,
            non_conflicting_remote=non_conflicting_remote,
            matched_material_ids=matched,
        )

        log.info(
            "conflicts_detected",
            conflicts=len(conflicts),
            local_only=len(non_conflicting_local) - len(matched),
            remote_only=len(non_conflicting_remote),
            matched=len(matched),
        )

        return result

    @staticmethod
    def _agree(local: ProgressRecord, remote: ProgressRecord) -> bool:
        """Two records for the same material agree when their payload is equal."""
        return local.percentage == remote.percentage
