#!/usr/bin/env python3
"""
Run one progress sync command against records loaded from a file.

The file (YAML or JSON) holds two lists of progress records:

    local:
      - {user_id: student-42, material_id: algebra-101, percentage: 40,
         last_updated: "2024-01-15T10:00:00Z"}
    remote:
      - {user_id: student-42, material_id: algebra-101, percentage: 70,
         last_updated: "2024-01-15T12:00:00Z"}

Both sides are held in memory, so this is useful for checking how a
strategy settles a given set of conflicts.

Usage:
    python scripts/simulate_sync.py RECORDS_FILE --user USER_ID
        [--strategy most_recent] [--full-sync] [--config CONFIG_PATH] [--offline]
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog
import yaml

from src.models.config import AppConfig
from src.models.progress import ConflictStrategy, ProgressRecord
from src.storage.memory import InMemoryProgressStore, InMemoryRemoteTransport
from src.sync.cache import TTLCache
from src.sync.handler import SyncProgressCommand, SyncProgressHandler
from src.sync.orchestrator import SyncOrchestrator
from src.utils.config_loader import ConfigLoader, ConfigurationError
from src.utils.logging_config import bind_sync_context, configure_from_config

log = structlog.stdlib.get_logger()


def load_records(path: str) -> tuple[list[ProgressRecord], list[ProgressRecord]]:
    """Load local and remote records from a YAML or JSON file."""
    data = yaml.safe_load(Path(path).read_text()) or {}
    local = [ProgressRecord(**item) for item in data.get("local", [])]
    remote = [ProgressRecord(**item) for item in data.get("remote", [])]
    return local, remote


async def perform_sync(
    records_path: str,
    user_id: str,
    strategy: ConflictStrategy | None,
    full_sync: bool,
    config: AppConfig,
    offline: bool = False,
) -> dict:
    """
    Run one sync command over in-memory stores seeded from ``records_path``.

    A dashboard snapshot of the local progress is cached before the cycle,
    the way the app caches it, so the summary shows whether the cycle
    invalidated it.

    Returns:
        Dictionary with sync statistics
    """
    local, remote = load_records(records_path)
    store = InMemoryProgressStore(local)
    transport = InMemoryRemoteTransport(remote, online=not offline)
    cache: TTLCache[dict] = TTLCache.from_config(config.cache)
    cache.put(user_id, local_snapshot(store, user_id))
    handler = SyncProgressHandler(
        SyncOrchestrator(store, transport, config=config.sync), cache=cache
    )

    bind_sync_context(user_id, sync_type="full" if full_sync else "incremental")

    command = SyncProgressCommand(
        user_id=user_id,
        force_full_sync=full_sync,
        strategy=strategy or config.sync.default_strategy,
    )
    outcome = await handler.handle(command)

    if not outcome.success:
        checkpoint = await store.get_checkpoint(user_id)
        log.error("simulated_sync_failed", error=outcome.error)
        return {
            "success": False,
            "error": f"{outcome.error_type}: {outcome.error}",
            "pending_retry": len(checkpoint.pending_retry),
        }

    result = outcome.value
    return {
        "success": True,
        "strategy": result.strategy.value,
        "pushed": result.metadata.pushed_count,
        "pulled": result.metadata.pulled_count,
        "auto_resolved": result.metadata.auto_resolved_count,
        "unresolved_conflicts": [c.material_id for c in result.conflicts],
        "pending_retry": len(result.pending_retry),
        "duration_seconds": result.metadata.duration_seconds,
        "events": outcome.events,
        "cache_invalidated": user_id not in cache,
        "final_local": local_snapshot(store, user_id),
    }


def local_snapshot(store: InMemoryProgressStore, user_id: str) -> dict[str, int]:
    return {r.material_id: r.percentage for r in store.records(user_id)}


def main():
    """Main entry point for the sync simulation script."""
    parser = argparse.ArgumentParser(description="Simulate a progress sync cycle")
    parser.add_argument("records", type=str, help="YAML or JSON file with local and remote records")
    parser.add_argument("--user", type=str, required=True, help="User id to synchronize")
    parser.add_argument(
        "--strategy",
        type=str,
        choices=[s.value for s in ConflictStrategy],
        default=None,
        help="Conflict strategy (configured default if omitted)",
    )
    parser.add_argument("--full-sync", action="store_true", help="Ignore the stored checkpoint")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument("--offline", action="store_true", help="Simulate an unreachable remote")

    args = parser.parse_args()

    try:
        config = ConfigLoader().load_config(args.config) if args.config else AppConfig()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_from_config(config.logging)

    strategy = ConflictStrategy(args.strategy) if args.strategy else None
    stats = asyncio.run(
        perform_sync(args.records, args.user, strategy, args.full_sync, config, args.offline)
    )

    print("\n" + "=" * 60)
    print("SYNC SIMULATION SUMMARY")
    print("=" * 60)

    if stats.get("success"):
        print("Status: SUCCESS")
        print(f"Strategy: {stats['strategy']}")
        print(f"Pushed: {stats['pushed']}")
        print(f"Pulled: {stats['pulled']}")
        print(f"Auto-resolved: {stats['auto_resolved']}")
        print(f"Unresolved conflicts: {', '.join(stats['unresolved_conflicts']) or 'none'}")
        print(f"Pending retry: {stats['pending_retry']}")
        print(f"Cache invalidated: {'yes' if stats['cache_invalidated'] else 'no'}")
        print(f"Duration: {stats['duration_seconds']:.3f} seconds")
        for material_id, percentage in sorted(stats["final_local"].items()):
            print(f"  {material_id}: {percentage}%")
    else:
        print("Status: FAILED")
        print(f"Error: {stats['error']}")
        print(f"Queued for retry: {stats['pending_retry']}")

    print("=" * 60)

    sys.exit(0 if stats.get("success") else 1)


if __name__ == "__main__":
    main()
