"""Sync engine: runs due datasets with bounded concurrency and records outcomes."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from fedsync.core.logging import bind_dataset, get_logger
from fedsync.datasets.base import Dataset, Phase
from fedsync.datasets.registry import Registry
from fedsync.services.sync_log import SyncLog

if TYPE_CHECKING:
    from fedsync.core.fetcher import HTTPFetcher

# Caps simultaneous outbound HTTP/DB load regardless of how many datasets run.
MAX_CONCURRENT_SYNCS = 5


class RunOpts(BaseModel):
    """Which datasets to sync and how."""

    phase: Optional[Phase] = None  # restrict to a specific phase
    datasets: List[str] = Field(default_factory=list)  # restrict to specific dataset names
    force: bool = False  # ignore should_run() scheduling
    full: bool = False  # full reload instead of incremental


class RunSummary(BaseModel):
    synced: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.synced + self.skipped + self.failed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Engine:
    """Orchestrates dataset sync runs.

    Per dataset: check due-ness against the sync log (unless forced), record a
    start, call ``Dataset.sync``, then record completion or failure. A failing
    dataset is counted and logged; it never aborts the rest of the batch.
    """

    def __init__(
        self,
        pool: sessionmaker,
        fetcher: "HTTPFetcher",
        sync_log: SyncLog,
        registry: Registry,
        temp_dir: str | Path,
        *,
        log=None,
        clock: Optional[Callable[[], datetime]] = None,
        max_concurrency: int = MAX_CONCURRENT_SYNCS,
    ):
        self.pool = pool
        self.fetcher = fetcher
        self.sync_log = sync_log
        self.registry = registry
        self.temp_dir = Path(temp_dir)
        self.log = log or get_logger("datasets.engine")
        self.clock = clock or _utcnow
        self.max_concurrency = max_concurrency

    async def run(self, opts: Optional[RunOpts] = None) -> RunSummary:
        """Sync every selected dataset that is due.

        Raises if the registry rejects the selection or the run is cancelled;
        individual dataset failures only show up in ``RunSummary.failed``.
        """
        opts = opts or RunOpts()
        now = self.clock()

        datasets = self.registry.select(opts.phase, opts.datasets)
        summary = RunSummary()

        if not datasets:
            self.log.info("no datasets selected")
            return summary

        self.log.info(f"selected datasets count={len(datasets)}")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(dataset: Dataset) -> None:
            async with semaphore:
                await self._run_one(dataset, opts, now, summary)

        # Cancelling run() cancels every unit; waiting units never start.
        outcomes = await asyncio.gather(*(bounded(ds) for ds in datasets), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        self.log.info(
            f"engine run complete synced={summary.synced} skipped={summary.skipped} failed={summary.failed}"
        )
        return summary

    async def _run_one(self, dataset: Dataset, opts: RunOpts, now: datetime, summary: RunSummary) -> None:
        ds_log = bind_dataset(self.log, dataset.name, str(dataset.phase))

        if not opts.force:
            try:
                last_sync = await self.sync_log.last_success(dataset.name)
            except Exception as exc:  # noqa: BLE001
                ds_log.error(f"failed to check last sync for {dataset.name}: {exc}")
                summary.failed += 1
                return

            if not dataset.should_run(now, last_sync):
                ds_log.debug(f"skipping {dataset.name} (not due, last_sync={last_sync})")
                summary.skipped += 1
                return

        ds_log.info(f"starting sync for {dataset.name}")
        start = asyncio.ensure_future(self.sync_log.start(dataset.name))
        try:
            run_id = await asyncio.shield(start)
        except asyncio.CancelledError:
            await self._close_interrupted_start(start, dataset, ds_log)
            raise
        except Exception as exc:  # noqa: BLE001
            ds_log.error(f"engine: start sync log for {dataset.name}: {exc}")
            summary.failed += 1
            return

        started = time.monotonic()
        try:
            result = await dataset.sync(
                self.pool,
                self.fetcher,
                self.temp_dir,
                full=opts.full,
                log=ds_log,
            )
        except asyncio.CancelledError:
            ds_log.warning(f"sync cancelled for {dataset.name} after {time.monotonic() - started:.1f}s")
            await self._record_failure(run_id, "cancelled", ds_log)
            raise
        except Exception as exc:  # noqa: BLE001
            elapsed = time.monotonic() - started
            ds_log.error(f"sync failed for {dataset.name} after {elapsed:.1f}s: {exc}")
            await self._record_failure(run_id, str(exc) or type(exc).__name__, ds_log)
            summary.failed += 1
            return

        elapsed = time.monotonic() - started
        try:
            await self.sync_log.complete(run_id, result)
        except Exception as exc:  # noqa: BLE001
            ds_log.error(f"failed to record sync completion for {dataset.name}: {exc}")

        rows = result.rows_synced if result else 0
        ds_log.info(f"sync complete for {dataset.name} rows={rows} elapsed={elapsed:.1f}s")
        summary.synced += 1

    async def _close_interrupted_start(self, start: asyncio.Future, dataset: Dataset, ds_log) -> None:
        """Wait for a start write caught by cancellation and mark its row failed."""
        try:
            run_id = await start
        except Exception as exc:  # noqa: BLE001
            ds_log.error(f"engine: start sync log for {dataset.name}: {exc}")
            return
        ds_log.warning(f"sync cancelled for {dataset.name} before it started")
        await self._record_failure(run_id, "cancelled", ds_log)

    async def _record_failure(self, run_id: int, message: str, ds_log) -> None:
        try:
            # Shielded so a cancelled run still closes out its log row.
            await asyncio.shield(self.sync_log.fail(run_id, message))
        except Exception as exc:  # noqa: BLE001
            ds_log.error(f"failed to record sync failure for run {run_id}: {exc}")
