"""Wires settings, database, fetcher and registry into engine runs."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from fedsync.core.config import Settings
from fedsync.core.fetcher import HTTPFetcher
from fedsync.core.logging import get_logger
from fedsync.datasets.engine import Engine, RunOpts, RunSummary
from fedsync.datasets.registry import Registry, build_registry
from fedsync.services.sync_log import SyncLog

log = get_logger("sync_service")


class SyncService:
    """Entry point shared by the API, the scheduler loop and the CLI.

    Responsibilities:
    - Build one fetcher per run and close it afterwards
    - Ensure the temp directory exists
    - Describe registered datasets together with their last success
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings,
        registry: Optional[Registry] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.registry = registry or build_registry(settings)
        self.sync_log = SyncLog(session_factory)

    async def run(self, opts: Optional[RunOpts] = None) -> RunSummary:
        opts = opts or RunOpts()
        temp_dir = self.settings.temp_path
        temp_dir.mkdir(parents=True, exist_ok=True)

        log.info(
            f"Starting sync phase={opts.phase} datasets={opts.datasets or 'all'} "
            f"force={opts.force} full={opts.full}"
        )
        async with HTTPFetcher(
            user_agent=self.settings.EDGAR_USER_AGENT,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            max_retries=self.settings.HTTP_MAX_RETRIES,
        ) as fetcher:
            engine = Engine(self.session_factory, fetcher, self.sync_log, self.registry, temp_dir)
            return await engine.run(opts)

    async def describe_datasets(self) -> List[Dict[str, Any]]:
        """Registered datasets in registration order with their last success."""
        described: List[Dict[str, Any]] = []
        for dataset in self.registry.all():
            described.append(
                {
                    "name": dataset.name,
                    "table": dataset.table,
                    "phase": str(dataset.phase),
                    "cadence": dataset.cadence.value,
                    "last_success": await self.sync_log.last_success(dataset.name),
                }
            )
        return described
