"""Sync entrypoint - Standalone script for running dataset syncs.

Usage:
    python -m fedsync.sync_entrypoint sync                       # Run all due datasets
    python -m fedsync.sync_entrypoint sync --phase 1b            # Restrict to a phase
    python -m fedsync.sync_entrypoint sync --datasets cbp,fred   # Restrict to datasets
    python -m fedsync.sync_entrypoint sync --force --full        # Ignore schedule, full reload
    python -m fedsync.sync_entrypoint status --dataset cbp       # Show recent sync log entries

Exit code is 1 only when the run itself cannot proceed (bad phase, unknown
dataset); individual dataset failures are reported but exit 0.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from fedsync.core.config import settings
from fedsync.core.db import SessionLocal
from fedsync.core.logging import get_logger
from fedsync.datasets.base import parse_phase
from fedsync.datasets.engine import RunOpts
from fedsync.services.sync_service import SyncService

logger = get_logger("sync_entrypoint")


def parse_dataset_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fedsync", description="Sync federal datasets")
    commands = parser.add_subparsers(dest="command", required=True)

    sync_cmd = commands.add_parser("sync", help="Sync datasets that are due")
    sync_cmd.add_argument("--phase", default="", help="restrict to phase: 1, 1b, 2, 3")
    sync_cmd.add_argument("--datasets", default="", help="comma-separated dataset names (e.g., cbp,fred)")
    sync_cmd.add_argument("--force", action="store_true", help="ignore scheduling and sync anyway")
    sync_cmd.add_argument("--full", action="store_true", help="full reload instead of incremental sync")

    status_cmd = commands.add_parser("status", help="Show recent sync log entries")
    status_cmd.add_argument("--dataset", default=None, help="only show this dataset")
    status_cmd.add_argument("--limit", type=int, default=20)
    return parser


def parse_sync_opts(args: argparse.Namespace) -> RunOpts:
    phase = parse_phase(args.phase) if args.phase else None
    return RunOpts(phase=phase, datasets=parse_dataset_list(args.datasets), force=args.force, full=args.full)


async def run_sync(service: SyncService, opts: RunOpts) -> int:
    summary = await service.run(opts)
    print(f"Sync complete: synced={summary.synced} skipped={summary.skipped} failed={summary.failed}")
    return 0


async def show_status(service: SyncService, dataset: Optional[str], limit: int) -> int:
    entries = await service.sync_log.list_entries(dataset=dataset, limit=limit)
    if not entries:
        print("No sync runs recorded")
        return 0

    print(f"{'DATASET':<20} {'STATUS':<10} {'STARTED':<20} {'ROWS':>10}  ERROR")
    for entry in entries:
        started = entry.started_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{entry.dataset:<20} {entry.status:<10} {started:<20} {entry.rows_synced:>10}  {entry.error or ''}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the sync CLI."""
    args = build_parser().parse_args(argv)
    service = SyncService(SessionLocal, settings)

    try:
        if args.command == "sync":
            return asyncio.run(run_sync(service, parse_sync_opts(args)))
        return asyncio.run(show_status(service, args.dataset, args.limit))
    except ValueError as exc:
        # parse_phase and UnknownDatasetError
        logger.error(f"Sync aborted: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
